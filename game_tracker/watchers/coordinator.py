"""
Coordinator owning every polling watcher and the release scheduler.

Lifecycle:
    coordinator = WatcherCoordinator(release_scheduler)
    await coordinator.add_watcher(watcher)   # runs watcher.init()
    await coordinator.start_all()
    ...
    await coordinator.stop_all()             # drains in-flight passes
"""

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from game_tracker.entities.schemas import SourceType
from game_tracker.watchers.polling import CheckResult, PollingWatcher

if TYPE_CHECKING:
    from game_tracker.releases.scheduler import ReleaseScheduler

logger = structlog.get_logger(__name__)


class WatcherCoordinator:
    """Starts, stops and fans out manual checks to all watchers."""

    def __init__(self, release_scheduler: "ReleaseScheduler | None" = None):
        self._watchers: list[PollingWatcher] = []
        self._release_scheduler = release_scheduler

    @property
    def watchers(self) -> list[PollingWatcher]:
        return list(self._watchers)

    @property
    def release_scheduler(self) -> "ReleaseScheduler | None":
        return self._release_scheduler

    def get_watcher(self, source_type: SourceType) -> PollingWatcher | None:
        for watcher in self._watchers:
            if watcher.source_type == SourceType(source_type):
                return watcher
        return None

    async def add_watcher(self, watcher: PollingWatcher) -> None:
        """Initialize a watcher, then register it."""
        await watcher.init()
        self._watchers.append(watcher)
        logger.info("Watcher registered", watcher=watcher.name)

    async def start_all(self) -> None:
        """Start every watcher and the release scheduler.

        Raises:
            SchedulingError: If a watcher has an invalid interval.
        """
        for watcher in self._watchers:
            watcher.start()
        if self._release_scheduler is not None:
            self._release_scheduler.start()
        logger.info("All watchers started", count=len(self._watchers))

    async def stop_all(self) -> None:
        """Stop scheduling, let in-flight passes finish, then release resources."""
        stoppables: list[Any] = list(self._watchers)
        if self._release_scheduler is not None:
            stoppables.append(self._release_scheduler)
        await asyncio.gather(*(s.stop() for s in stoppables))

        for watcher in self._watchers:
            try:
                await watcher.close()
            except Exception as e:
                logger.warning("Watcher close failed", watcher=watcher.name, error=str(e))
        if self._release_scheduler is not None:
            await self._release_scheduler.close()
        logger.info("All watchers stopped")

    async def force_check(self, entity_id: int) -> dict[str, CheckResult]:
        """Re-check one game on every watcher (used after it was edited)."""
        results = await asyncio.gather(
            *(w.check_one(entity_id) for w in self._watchers),
            return_exceptions=True,
        )

        by_watcher: dict[str, CheckResult] = {}
        for watcher, result in zip(self._watchers, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Forced check failed",
                    watcher=watcher.name,
                    entity_id=entity_id,
                    error=str(result),
                )
                continue
            by_watcher[watcher.name] = result
        return by_watcher
