"""
Steam community announcements fetcher.

Reads the public RSS feed Steam publishes for each app:
    https://store.steampowered.com/feeds/news/app/<appid>/?cc=EN&l=english

Entries are official developer announcements (patch notes, events...).
The feed is newest first; pubDate values are RFC 2822 and are converted
to ISO-8601 here.
"""

import logging
from email.utils import parsedate_to_datetime
from typing import Any

import feedparser

from game_tracker.entities.schemas import NewsItem, SourceType
from game_tracker.fetchers.base import FetchError, SourceFetcher

logger = logging.getLogger(__name__)

STEAM_INTERNAL_FEED_URL = "https://store.steampowered.com/feeds/news/app/{appid}/"
FEED_NAME = "Steam"


class SteamInternalFetcher(SourceFetcher):
    """
    Fetcher for official Steam announcements of one app.

    Polling: every few hours (announcements are rare)
    """

    def __init__(self, max_items: int = 10, **kwargs: Any):
        super().__init__(**kwargs)
        self._max_items = max_items

    @property
    def source_type(self) -> SourceType:
        return SourceType.STEAM_INTERNAL

    async def fetch_latest(self, source_id: str) -> list[NewsItem] | None:
        await self._rate_limiter.acquire()

        response = await self._http.get(
            STEAM_INTERNAL_FEED_URL.format(appid=source_id),
            params={"cc": "EN", "l": "english"},
        )
        feed = feedparser.parse(response.text)

        if feed.get("bozo") and not feed.get("entries"):
            raise FetchError(
                f"Unparseable Steam feed for app {source_id}: {feed.get('bozo_exception')}"
            )

        entries = feed.get("entries", [])
        logger.info(f"Fetched {len(entries)} Steam announcements for app {source_id}")

        items = []
        for entry in entries[: self._max_items]:
            item = self._transform(entry)
            if item is not None:
                items.append(item)
        return items

    def _transform(self, entry: dict[str, Any]) -> NewsItem | None:
        """Transform an RSS entry to a NewsItem."""
        published = entry.get("published")
        if not published:
            logger.debug(f"Skipping Steam entry without date: {entry.get('title')}")
            return None

        return NewsItem(
            id=entry.get("id") or entry.get("link", ""),
            date=self._to_iso(published),
            title=entry.get("title", ""),
            url=entry.get("link", ""),
            content=entry.get("summary", ""),
            image=self._image_from_enclosures(entry),
            feed_name=FEED_NAME,
        )

    @staticmethod
    def _to_iso(published: str) -> str:
        try:
            return parsedate_to_datetime(published).isoformat()
        except (TypeError, ValueError):
            # Left as-is; marker derivation decides whether it is usable
            return published

    @staticmethod
    def _image_from_enclosures(entry: dict[str, Any]) -> str | None:
        for enclosure in entry.get("enclosures", []):
            if str(enclosure.get("type", "")).startswith("image/"):
                return enclosure.get("href") or enclosure.get("url")
        return None
