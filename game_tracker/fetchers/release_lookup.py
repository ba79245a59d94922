"""Release date lookup against the Steam store appdetails endpoint."""

import logging
from datetime import date, datetime
from typing import Any

from game_tracker.entities.schemas import STEAM_SOURCE_TYPES, Source
from game_tracker.fetchers.base import RateLimiter, ReleaseDateLookup
from game_tracker.fetchers.http_client import HTTPClient, RetryConfig

logger = logging.getLogger(__name__)

STEAM_APPDETAILS_URL = "https://store.steampowered.com/api/appdetails"

# Store pages show dates in several locales' orderings
_DATE_FORMATS = ("%d %b, %Y", "%b %d, %Y", "%d %B, %Y", "%B %d, %Y")


def parse_store_date(raw: str) -> date | None:
    """Parse a store release date. Vague dates ("Q3 2025", "Coming soon") give None."""
    value = raw.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


class SteamReleaseDateLookup(ReleaseDateLookup):
    """Resolves release dates of games that have a Steam app id."""

    def __init__(
        self,
        rate_limit: int = 60,
        http_client: HTTPClient | None = None,
        retry_config: RetryConfig | None = None,
        timeout: float = 10.0,
    ):
        self._rate_limiter = RateLimiter(rate=rate_limit)
        self._http = http_client or HTTPClient(retry_config=retry_config, timeout=timeout)

    async def init(self) -> None:
        await self._http.open()

    async def close(self) -> None:
        await self._http.close()

    def supports(self, source: Source) -> bool:
        return source.type in STEAM_SOURCE_TYPES

    async def lookup_release_date(self, source: Source) -> date | None:
        await self._rate_limiter.acquire()
        response = await self._http.get(
            STEAM_APPDETAILS_URL,
            params={"appids": source.source_id, "filters": "release_date"},
        )
        payload: dict[str, Any] = response.json() or {}
        app = payload.get(str(source.source_id)) or {}
        if not app.get("success"):
            logger.info(f"No store details for app {source.source_id}")
            return None

        release = app.get("data", {}).get("release_date", {})
        if release.get("coming_soon") and not release.get("date"):
            return None

        parsed = parse_store_date(release.get("date", ""))
        if parsed is None:
            logger.debug(
                f"Release date of app {source.source_id} is not concrete: {release.get('date')!r}"
            )
        return parsed
