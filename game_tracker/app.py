"""
Application wiring.

Builds repositories, the Discord sink, one polling watcher per source type,
the release scheduler and the entity service from Settings. Watchers are
registered (and their fetchers opened) here; nothing is scheduled until
``coordinator.start_all()``.
"""

from dataclasses import dataclass

import structlog

from game_tracker.config.settings import Settings, get_settings
from game_tracker.entities.markers import MarkerRepository
from game_tracker.entities.milestones import MilestoneRepository
from game_tracker.entities.repository import EntityRepository
from game_tracker.entities.service import EntityService
from game_tracker.fetchers.base import SourceFetcher
from game_tracker.fetchers.http_client import RetryConfig
from game_tracker.fetchers.release_lookup import SteamReleaseDateLookup
from game_tracker.fetchers.social_timeline import SocialTimelineFetcher
from game_tracker.fetchers.steam_external import SteamExternalFetcher
from game_tracker.fetchers.steam_internal import SteamInternalFetcher
from game_tracker.notifications.base import NotificationSink
from game_tracker.notifications.sink import DiscordNotificationSink
from game_tracker.releases.scheduler import ReleaseScheduler
from game_tracker.storage.database import Database
from game_tracker.watchers.coordinator import WatcherCoordinator
from game_tracker.watchers.polling import PollingWatcher

logger = structlog.get_logger(__name__)


@dataclass
class Application:
    """Everything the CLI needs to run or inspect the tracker."""

    database: Database
    repository: EntityRepository
    markers: MarkerRepository
    milestones: MilestoneRepository
    sink: NotificationSink
    coordinator: WatcherCoordinator
    release_scheduler: ReleaseScheduler
    service: EntityService


async def create_tables(database: Database) -> None:
    """Create every table (idempotent). Games first; milestones reference them."""
    await EntityRepository(database).create_table()
    await MilestoneRepository(database).create_table()


def build_fetchers(settings: Settings) -> list[tuple[SourceFetcher, int]]:
    """Fetchers paired with their check interval in seconds."""
    retry = RetryConfig(
        max_retries=settings.max_http_retries,
        max_backoff_seconds=settings.max_backoff_seconds,
    )
    common = {"retry_config": retry, "timeout": settings.fetch_timeout_seconds}

    fetchers: list[tuple[SourceFetcher, int]] = [
        (
            SteamInternalFetcher(rate_limit=settings.steam_rate_limit, **common),
            settings.steam_internal_interval_seconds,
        ),
        (
            SteamExternalFetcher(rate_limit=settings.steam_rate_limit, **common),
            settings.steam_external_interval_seconds,
        ),
    ]
    if settings.twitter_configured:
        fetchers.append((
            SocialTimelineFetcher(
                bearer_token=settings.twitter_bearer_token,
                rate_limit=settings.twitter_rate_limit,
                **common,
            ),
            settings.twitter_interval_seconds,
        ))
    else:
        logger.warning("Twitter bearer token not configured, Twitter watcher disabled")
    return fetchers


async def build_application(
    database: Database,
    settings: Settings | None = None,
    sink: NotificationSink | None = None,
) -> Application:
    """Wire the application on an already connected database."""
    settings = settings or get_settings()

    repository = EntityRepository(database)
    markers = MarkerRepository(database)
    milestones = MilestoneRepository(database)

    if sink is None:
        sink = DiscordNotificationSink(
            repository,
            bot_token=settings.discord_bot_token,
            api_url=settings.discord_api_url,
        )

    release_scheduler = ReleaseScheduler(
        registry=repository,
        sink=sink,
        milestones=milestones,
        lookups=[
            SteamReleaseDateLookup(
                rate_limit=settings.steam_rate_limit,
                retry_config=RetryConfig(max_retries=settings.max_http_retries),
                timeout=settings.fetch_timeout_seconds,
            )
        ],
        check_time=settings.release_check_time,
        timezone=settings.release_timezone,
        reminder_days=settings.release_reminder_days,
    )
    await release_scheduler.init()

    coordinator = WatcherCoordinator(release_scheduler)
    for fetcher, interval in build_fetchers(settings):
        await coordinator.add_watcher(
            PollingWatcher(
                check_interval=interval,
                fetcher=fetcher,
                sink=sink,
                registry=repository,
                markers=markers,
                fetch_timeout=settings.source_timeout_seconds,
            )
        )

    service = EntityService(
        repository=repository,
        coordinator=coordinator,
        release_scheduler=release_scheduler,
    )

    return Application(
        database=database,
        repository=repository,
        markers=markers,
        milestones=milestones,
        sink=sink,
        coordinator=coordinator,
        release_scheduler=release_scheduler,
        service=service,
    )
