"""
Daily release scheduler.

Each run performs, in this order, with one "today" shared by all passes:
1. Backfill: games without a release date get one from an authoritative
   lookup (silently, no announcement).
2. Today: games releasing today are announced.
3. Upcoming: games releasing in N days (N from ``reminder_days``) are
   announced.

Every milestone (game, key, release date) is claimed in the milestone
store before it is sent, so it fires at most once even when the run is
repeated the same day or after a restart. A failed send is logged and
not retried.
"""

from collections.abc import Awaitable, Callable, Iterable
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import structlog

from game_tracker.entities.milestones import MilestoneStore
from game_tracker.entities.repository import EntityRegistry
from game_tracker.entities.schemas import Entity
from game_tracker.fetchers.base import ReleaseDateLookup
from game_tracker.notifications.base import NotificationSink
from game_tracker.observability.metrics import get_metrics
from game_tracker.releases.schemas import (
    RELEASED_TODAY,
    ReleaseRunResult,
    upcoming_milestone,
)
from game_tracker.watchers.scheduling import DailyTask

logger = structlog.get_logger(__name__)


class ReleaseScheduler:
    """Announces release milestones and repairs missing release dates."""

    def __init__(
        self,
        registry: EntityRegistry,
        sink: NotificationSink,
        milestones: MilestoneStore,
        lookups: Iterable[ReleaseDateLookup] = (),
        check_time: time = time(0, 0),
        timezone: str = "UTC",
        reminder_days: Iterable[int] = (7,),
        clock: Callable[[], datetime] | None = None,
    ):
        self._registry = registry
        self._sink = sink
        self._milestones = milestones
        self._lookups = list(lookups)
        self._tz = ZoneInfo(timezone)
        self._clock = clock or (lambda: datetime.now(self._tz))
        self.reminder_days = sorted(set(reminder_days))
        self._task = DailyTask(
            "release-scheduler", check_time, self.run_once, timezone=timezone, clock=self._clock
        )

    @property
    def is_running(self) -> bool:
        return self._task.is_running

    def today(self) -> date:
        """Current calendar date in the scheduler's timezone."""
        return self._clock().astimezone(self._tz).date()

    async def init(self) -> None:
        for lookup in self._lookups:
            await lookup.init()

    async def close(self) -> None:
        for lookup in self._lookups:
            await lookup.close()

    def start(self) -> None:
        """Run once now, then daily at the configured time."""
        self._task.start()
        logger.info("Release scheduler started", check_time=self._task.at.isoformat())

    async def stop(self) -> None:
        await self._task.stop()

    async def run_once(self, today: date | None = None) -> ReleaseRunResult:
        """Backfill, then announce today's and upcoming releases."""
        today = today or self.today()
        result = ReleaseRunResult(today=today)

        await self._backfill(result)
        await self._announce_today(today, result)
        await self._announce_upcoming(today, result)

        logger.info(
            "Release run complete",
            today=today.isoformat(),
            backfilled=len(result.backfilled),
            released=len(result.released),
            upcoming=len(result.upcoming),
            skipped=result.skipped,
            failed=result.failed,
        )
        return result

    async def on_entity_release_date_set(
        self,
        entity: Entity,
        previous_date: date | None = None,
        today: date | None = None,
    ) -> None:
        """React right away to a release date being created or changed.

        A changed date (previous date known and different) is announced as
        a delay or move forward. A date of today, or one matching a
        reminder offset, is announced without waiting for the daily run.
        """
        release_date = entity.release_date
        if release_date is None:
            return
        log = logger.bind(entity_id=entity.id, game=entity.name)

        if previous_date is not None and previous_date != release_date:
            try:
                await self._sink.notify_release_date_changed(entity, previous_date, release_date)
                log.info(
                    "Release date change announced",
                    old_date=previous_date.isoformat(),
                    new_date=release_date.isoformat(),
                )
            except Exception as e:
                log.error("Release date change announcement failed", error=str(e))

        today = today or self.today()
        days_left = (release_date - today).days
        if days_left == 0:
            await self._announce(
                entity, RELEASED_TODAY, release_date,
                lambda: self._sink.notify_released_today(entity),
            )
        elif days_left in self.reminder_days:
            await self._announce(
                entity, upcoming_milestone(days_left), release_date,
                lambda: self._sink.notify_releasing_soon(entity, release_date, days_left),
            )

    async def _backfill(self, result: ReleaseRunResult) -> None:
        if not self._lookups:
            return

        for entity in await self._registry.list_entities_missing_release_date():
            log = logger.bind(entity_id=entity.id, game=entity.name)
            try:
                found = await self._lookup(entity)
                if found is None:
                    continue
                await self._registry.set_release_date(entity.id, found)
                entity.release_date = found
                result.backfilled.append(entity.id)
                get_metrics().record_backfill()
                log.info("Release date backfilled", release_date=found.isoformat())
            except Exception as e:
                result.failed += 1
                log.error("Release date backfill failed", error=str(e), error_type=type(e).__name__)

    async def _lookup(self, entity: Entity) -> date | None:
        for source in entity.sources:
            for lookup in self._lookups:
                if not lookup.supports(source):
                    continue
                found = await lookup.lookup_release_date(source)
                if found is not None:
                    return found
        return None

    async def _announce_today(self, today: date, result: ReleaseRunResult) -> None:
        for entity in await self._registry.list_entities_releasing_on(today):
            outcome = await self._announce(
                entity, RELEASED_TODAY, today,
                lambda entity=entity: self._sink.notify_released_today(entity),
            )
            self._tally(result, result.released, entity, outcome)

    async def _announce_upcoming(self, today: date, result: ReleaseRunResult) -> None:
        for days in self.reminder_days:
            day = today + timedelta(days=days)
            for entity in await self._registry.list_entities_releasing_on(day):
                outcome = await self._announce(
                    entity, upcoming_milestone(days), day,
                    lambda entity=entity, day=day, days=days: self._sink.notify_releasing_soon(
                        entity, day, days
                    ),
                )
                self._tally(result, result.upcoming, entity, outcome)

    @staticmethod
    def _tally(
        result: ReleaseRunResult, sent: list[int], entity: Entity, outcome: str
    ) -> None:
        if outcome == "sent":
            sent.append(entity.id)
        elif outcome == "skipped":
            result.skipped += 1
        else:
            result.failed += 1

    async def _announce(
        self,
        entity: Entity,
        milestone: str,
        release_date: date,
        send: Callable[[], Awaitable[None]],
    ) -> str:
        """Claim then send one milestone. Returns 'sent', 'skipped' or 'error'."""
        log = logger.bind(entity_id=entity.id, game=entity.name, milestone=milestone)
        try:
            if not await self._milestones.try_claim(entity.id, milestone, release_date):
                log.debug("Milestone already announced")
                get_metrics().record_milestone(milestone, "skipped")
                return "skipped"
            await send()
        except Exception as e:
            log.error("Milestone announcement failed", error=str(e), error_type=type(e).__name__)
            get_metrics().record_milestone(milestone, "error")
            return "error"

        log.info("Milestone announced", release_date=release_date.isoformat())
        get_metrics().record_milestone(milestone, "sent")
        return "sent"
