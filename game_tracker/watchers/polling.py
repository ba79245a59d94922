"""
Polling watcher for one source type.

A PollingWatcher periodically walks every tracked game, fetches the latest
items of the game's source of its type, and notifies subscribers when the
freshest item is newer than the stored marker.

Per (game, source) the outcome is one of:
- empty: the source returned nothing this tick
- baseline: no marker was stored yet; the marker is stored silently
- unchanged: the freshest item is not newer than the stored marker
- notified: a newer item was announced and its marker persisted
- failed: fetch, data or delivery error; the marker is left untouched

The marker is persisted only after a successful notification, so a failed
delivery is retried on the next tick (never within the same pass).
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import timedelta

import httpx
import structlog

from game_tracker.entities.freshness import MarkerError, is_newer, newest_item
from game_tracker.entities.markers import UpdateMarkerStore
from game_tracker.entities.repository import EntityRegistry
from game_tracker.entities.schemas import Entity, Source, SourceType
from game_tracker.fetchers.base import FetchError, SourceFetcher
from game_tracker.fetchers.http_client import HTTPClientError
from game_tracker.notifications.base import DeliveryError, NotificationSink
from game_tracker.observability.metrics import get_metrics
from game_tracker.watchers.scheduling import PeriodicTask

logger = structlog.get_logger(__name__)

OUTCOMES = ("empty", "baseline", "unchanged", "notified", "failed")


@dataclass
class CheckResult:
    """Outcome counts of one check pass."""

    skipped: bool = False
    counts: dict[str, int] = field(default_factory=lambda: dict.fromkeys(OUTCOMES, 0))

    def add(self, outcome: str) -> None:
        self.counts[outcome] += 1

    @property
    def checked(self) -> int:
        return sum(self.counts.values())

    @property
    def notified(self) -> int:
        return self.counts["notified"]

    @property
    def failed(self) -> int:
        return self.counts["failed"]


class PollingWatcher:
    """
    Periodic news watcher for one source type.

    Passes of the same watcher never overlap. A full pass that finds another
    full pass in flight is skipped; otherwise it waits for any running
    ``check_one()``, as ``check_one()`` waits for a running pass.
    """

    def __init__(
        self,
        check_interval: float | timedelta,
        fetcher: SourceFetcher,
        sink: NotificationSink,
        registry: EntityRegistry,
        markers: UpdateMarkerStore,
        source_type: SourceType | None = None,
        fetch_timeout: float = 10.0,
    ):
        self.fetcher = fetcher
        self.source_type = SourceType(source_type or fetcher.source_type)
        self._sink = sink
        self._registry = registry
        self._markers = markers
        self._fetch_timeout = fetch_timeout
        self._lock = asyncio.Lock()
        self._pass_running = False
        self._task = PeriodicTask(
            f"watcher:{self.source_type.value}", check_interval, self.check_all
        )

    @property
    def name(self) -> str:
        return self._task.name

    @property
    def check_interval(self) -> float:
        return self._task.interval

    @property
    def is_running(self) -> bool:
        return self._task.is_running

    async def init(self) -> None:
        """Source-specific one-time setup."""
        await self.fetcher.init()

    async def close(self) -> None:
        await self.fetcher.close()

    def start(self) -> None:
        """Run one check now, then every ``check_interval``.

        Raises:
            SchedulingError: If the interval is not positive.
        """
        self._task.start()
        logger.info(
            "Watcher started",
            source_type=self.source_type.value,
            interval_seconds=self.check_interval,
        )

    async def stop(self) -> None:
        """Stop scheduling; an in-flight pass is allowed to finish."""
        await self._task.stop()

    async def check_all(self) -> CheckResult:
        """Check every game with a source of this watcher's type."""
        if self._pass_running:
            logger.warning("Previous pass still running, skipping", source_type=self.source_type.value)
            return CheckResult(skipped=True)

        self._pass_running = True
        try:
            async with self._lock:
                start = time.monotonic()
                entities = await self._registry.list_entities()
                result = await self._check_entities(entities)
                get_metrics().record_check_duration(
                    self.source_type.value, time.monotonic() - start
                )
        finally:
            self._pass_running = False

        logger.info(
            "Check pass complete",
            source_type=self.source_type.value,
            entities=len(entities),
            **result.counts,
        )
        return result

    async def check_one(self, entity_id: int) -> CheckResult:
        """Check a single game right away (e.g. after its sources changed)."""
        async with self._lock:
            entity = await self._registry.get_entity(entity_id)
            if entity is None:
                logger.warning("Game not found for check", entity_id=entity_id)
                return CheckResult()
            return await self._check_entities([entity])

    async def _check_entities(self, entities: list[Entity]) -> CheckResult:
        result = CheckResult()
        for entity in entities:
            for source in entity.sources_of(self.source_type):
                outcome = await self._check_source(entity, source)
                result.add(outcome)
                get_metrics().record_check(self.source_type.value, outcome)
        return result

    async def _check_source(self, entity: Entity, source: Source) -> str:
        log = logger.bind(
            entity_id=entity.id,
            game=entity.name,
            source_type=self.source_type.value,
            source_id=source.source_id,
        )

        try:
            items = await asyncio.wait_for(
                self.fetcher.fetch_latest(source.source_id),
                timeout=self._fetch_timeout,
            )
        except asyncio.TimeoutError:
            log.warning("Fetch timed out", timeout=self._fetch_timeout)
            get_metrics().record_fetch_error(self.source_type.value, "timeout")
            return "failed"
        except (HTTPClientError, FetchError, httpx.HTTPError) as e:
            log.warning("Fetch failed", error=str(e), error_type=type(e).__name__)
            get_metrics().record_fetch_error(self.source_type.value, type(e).__name__)
            return "failed"
        except Exception as e:
            log.error("Unexpected fetch error", error=str(e), error_type=type(e).__name__)
            get_metrics().record_fetch_error(self.source_type.value, type(e).__name__)
            return "failed"

        if not items:
            log.debug("No items")
            return "empty"

        try:
            item, marker = newest_item(items)
        except MarkerError as e:
            log.error("Unusable item dates", error=str(e))
            return "failed"

        try:
            stored = await self._markers.get_marker(entity.id, self.source_type)

            if stored is None:
                await self._markers.set_marker(entity.id, self.source_type, marker)
                log.info("Baseline marker stored", marker=marker)
                return "baseline"

            if not is_newer(marker, stored):
                return "unchanged"

            try:
                await self._sink.notify_update(entity, self.source_type, item)
            except DeliveryError as e:
                log.warning("Delivery failed, marker kept", error=str(e), item_id=item.id)
                return "failed"

            await self._markers.set_marker(entity.id, self.source_type, marker)
        except Exception as e:
            log.error("Check failed", error=str(e), error_type=type(e).__name__)
            return "failed"

        log.info("Update notified", item_id=item.id, title=item.title, marker=marker)
        return "notified"
