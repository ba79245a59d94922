"""Source fetchers for Steam and Twitter news."""

from game_tracker.fetchers.base import (
    FetchError,
    RateLimiter,
    ReleaseDateLookup,
    SourceFetcher,
)
from game_tracker.fetchers.http_client import (
    HTTPClient,
    HTTPClientError,
    RateLimitError,
    RetryConfig,
)
from game_tracker.fetchers.release_lookup import SteamReleaseDateLookup
from game_tracker.fetchers.social_timeline import SocialTimelineFetcher
from game_tracker.fetchers.steam_external import SteamExternalFetcher
from game_tracker.fetchers.steam_internal import SteamInternalFetcher

__all__ = [
    "FetchError",
    "HTTPClient",
    "HTTPClientError",
    "RateLimitError",
    "RateLimiter",
    "ReleaseDateLookup",
    "RetryConfig",
    "SocialTimelineFetcher",
    "SourceFetcher",
    "SteamExternalFetcher",
    "SteamInternalFetcher",
    "SteamReleaseDateLookup",
]
