"""
Twitter timeline fetcher using the official API v2.

Resolves a handle to a user id once (cached), then reads the most recent
tweets of that user. Timelines can come back out of order, so items are
sorted newest first before being returned.
"""

import logging
from typing import Any

from game_tracker.entities.schemas import NewsItem, SourceType
from game_tracker.fetchers.base import FetchError, SourceFetcher

logger = logging.getLogger(__name__)

TWITTER_API_BASE = "https://api.twitter.com/2"
TWITTER_WEB_BASE = "https://twitter.com"
USER_BY_USERNAME = f"{TWITTER_API_BASE}/users/by/username/{{username}}"
USER_TWEETS = f"{TWITTER_API_BASE}/users/{{user_id}}/tweets"


class SocialTimelineFetcher(SourceFetcher):
    """
    Fetcher for the recent tweets of one account.

    Requires a bearer token; the watcher for this type is only registered
    when one is configured.
    """

    def __init__(self, bearer_token: str, max_results: int = 5, **kwargs: Any):
        super().__init__(**kwargs)
        self._bearer_token = bearer_token
        # API minimum is 5
        self._max_results = max(5, min(max_results, 100))
        self._users: dict[str, dict[str, Any]] = {}

    @property
    def source_type(self) -> SourceType:
        return SourceType.TWITTER

    @property
    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._bearer_token}"}

    async def fetch_latest(self, source_id: str) -> list[NewsItem] | None:
        username = source_id.lstrip("@")
        user = await self._resolve_user(username)

        await self._rate_limiter.acquire()
        response = await self._http.get(
            USER_TWEETS.format(user_id=user["id"]),
            params={
                "max_results": self._max_results,
                "tweet.fields": "created_at,attachments",
                "expansions": "attachments.media_keys",
                "media.fields": "url,preview_image_url,type",
            },
            headers=self._auth_headers,
        )
        data = response.json()

        media = {
            m["media_key"]: m.get("url") or m.get("preview_image_url")
            for m in data.get("includes", {}).get("media", [])
        }
        tweets = [t for t in data.get("data", []) if t.get("created_at")]
        logger.info(f"Fetched {len(tweets)} tweets for @{username}")

        items = [self._transform(t, username, user.get("name"), media) for t in tweets]
        items.sort(key=lambda item: item.date, reverse=True)
        return items

    async def _resolve_user(self, username: str) -> dict[str, Any]:
        key = username.lower()
        if key in self._users:
            return self._users[key]

        await self._rate_limiter.acquire()
        response = await self._http.get(
            USER_BY_USERNAME.format(username=username),
            headers=self._auth_headers,
        )
        user = response.json().get("data")
        if not user or "id" not in user:
            raise FetchError(f"Unknown Twitter account @{username}")

        self._users[key] = user
        return user

    @staticmethod
    def _transform(
        tweet: dict[str, Any],
        username: str,
        display_name: str | None,
        media: dict[str, str | None],
    ) -> NewsItem:
        media_keys = tweet.get("attachments", {}).get("media_keys", [])
        image = next((media[k] for k in media_keys if media.get(k)), None)

        return NewsItem(
            id=tweet["id"],
            # created_at is ISO-8601 with a Z suffix; lexical order is chronological
            date=tweet["created_at"],
            title=display_name or f"@{username}",
            url=f"{TWITTER_WEB_BASE}/{username}/status/{tweet['id']}",
            content=tweet.get("text", ""),
            image=image,
            author=username,
            feed_name="Twitter",
        )
