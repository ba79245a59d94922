"""
Steam curated press fetcher.

Uses the public ISteamNews API restricted to a list of known press feeds
(PC Gamer, Rock Paper Shotgun, VG247, PCGamesN). Item dates are unix
seconds and are converted to ISO-8601.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from game_tracker.entities.schemas import NewsItem, SourceType
from game_tracker.fetchers.base import FetchError, SourceFetcher

logger = logging.getLogger(__name__)

STEAM_NEWS_API_URL = "http://api.steampowered.com/ISteamNews/GetNewsForApp/v0002/"
PRESS_FEEDS = ("PC Gamer", "rps", "VG247", "PCGamesN")
HEADER_IMAGE_URL = (
    "https://shared.akamai.steamstatic.com/store_item_assets/steam/apps/{appid}/header.jpg"
)


class SteamExternalFetcher(SourceFetcher):
    """Fetcher for press articles about one Steam app."""

    def __init__(
        self,
        count: int = 3,
        feeds: tuple[str, ...] = PRESS_FEEDS,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self._count = count
        self._feeds = feeds

    @property
    def source_type(self) -> SourceType:
        return SourceType.STEAM_EXTERNAL

    async def fetch_latest(self, source_id: str) -> list[NewsItem] | None:
        await self._rate_limiter.acquire()

        response = await self._http.get(
            STEAM_NEWS_API_URL,
            params={
                "feeds": ",".join(self._feeds),
                "appid": source_id,
                "count": self._count,
            },
        )

        try:
            payload = response.json()
            news_items = payload["appnews"].get("newsitems", [])
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise FetchError(f"Malformed Steam news payload for app {source_id}") from e

        logger.info(f"Fetched {len(news_items)} press articles for app {source_id}")
        return [self._transform(raw, source_id) for raw in news_items if raw.get("date")]

    @staticmethod
    def _transform(raw: dict[str, Any], appid: str) -> NewsItem:
        published = datetime.fromtimestamp(int(raw["date"]), tz=timezone.utc)
        return NewsItem(
            id=str(raw.get("gid", "")),
            date=published.isoformat(),
            title=raw.get("title", ""),
            url=str(raw.get("url", "")).replace(" ", "%20"),
            content=raw.get("contents", ""),
            image=HEADER_IMAGE_URL.format(appid=appid),
            author=raw.get("author") or None,
            feed_name=raw.get("feedlabel") or raw.get("feedname"),
        )
