"""
Base fetcher interface and shared functionality for source fetchers.

Each source type has one fetcher implementing ``fetch_latest()``, which
returns the latest NewsItem instances for one upstream identifier (newest
first), or None/empty when the source has nothing. The base class provides:
- Rate limiting
- A shared HTTPClient with retry/backoff, opened by ``init()``
- Common text utilities
"""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date

from game_tracker.entities.schemas import NewsItem, Source, SourceType
from game_tracker.fetchers.http_client import HTTPClient, RetryConfig

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Raised when an upstream source returns unusable data."""


@dataclass
class RateLimiter:
    """
    Simple token bucket rate limiter.

    Allows `rate` requests per minute with burst capacity.
    """

    rate: int  # requests per minute
    _tokens: float = field(init=False)
    _last_update: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        self._tokens = float(self.rate)
        self._last_update = time.monotonic()

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_update
            self._last_update = now

            # Refill tokens based on elapsed time
            self._tokens = min(
                float(self.rate),
                self._tokens + elapsed * (self.rate / 60.0),
            )

            if self._tokens < 1:
                wait_time = (1 - self._tokens) * 60.0 / self.rate
                logger.debug(f"Rate limited, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
                self._tokens = 0
            else:
                self._tokens -= 1


class SourceFetcher(ABC):
    """
    Abstract base class for source fetchers.

    Subclasses must implement:
        - source_type: SourceType handled by the fetcher
        - fetch_latest(): latest items for one upstream identifier

    Fetchers may raise on transient errors (network, rate limits); the
    watcher logs them and retries on its next tick.
    """

    def __init__(
        self,
        rate_limit: int = 60,
        http_client: HTTPClient | None = None,
        retry_config: RetryConfig | None = None,
        timeout: float = 10.0,
    ):
        self._rate_limiter = RateLimiter(rate=rate_limit)
        self._http = http_client or HTTPClient(retry_config=retry_config, timeout=timeout)

    @property
    @abstractmethod
    def source_type(self) -> SourceType:
        """Return the source type this fetcher handles."""
        ...

    @property
    def name(self) -> str:
        """Human-readable fetcher name."""
        return f"{self.source_type.value}_fetcher"

    async def init(self) -> None:
        """One-time setup before the first fetch."""
        await self._http.open()

    async def close(self) -> None:
        """Release resources held by the fetcher."""
        await self._http.close()

    @abstractmethod
    async def fetch_latest(self, source_id: str) -> list[NewsItem] | None:
        """
        Fetch the latest items for one upstream identifier.

        Args:
            source_id: Upstream identifier (Steam app id, Twitter handle...)

        Returns:
            Items newest first, or None/empty when the source has no data.
        """
        ...


class ReleaseDateLookup(ABC):
    """Authoritative release-date lookup for games missing one."""

    @abstractmethod
    def supports(self, source: Source) -> bool:
        """Whether this lookup can resolve the given source."""

    @abstractmethod
    async def lookup_release_date(self, source: Source) -> date | None:
        """Return a concrete release date, or None if unknown/vague."""

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        pass


# Common text utilities used across fetchers

def clean_text(text: str) -> str:
    """
    Clean text content by normalizing whitespace and removing control characters.

    Newlines are kept so that paragraph structure survives.
    """
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()
