"""
Asyncio scheduling primitives for watchers and the release scheduler.

PeriodicTask runs a coroutine immediately, then again a fixed delay after
each pass completes (so passes never overlap). DailyTask runs immediately,
then once per day at a wall-clock time in a given timezone.

Both stop cooperatively: ``stop()`` sets an event, lets an in-flight pass
finish and awaits the loop. A pass that raises is logged and the schedule
continues.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, time, timedelta
from datetime import timezone as dt_timezone
from zoneinfo import ZoneInfo

import structlog

logger = structlog.get_logger(__name__)

Job = Callable[[], Awaitable[object]]


class SchedulingError(Exception):
    """Raised for invalid schedules (e.g. non-positive interval)."""


def _as_seconds(interval: float | timedelta) -> float:
    if isinstance(interval, timedelta):
        return interval.total_seconds()
    return float(interval)


class _ScheduledTask:
    """Shared start/stop machinery."""

    def __init__(self, name: str, job: Job) -> None:
        self.name = name
        self._job = job
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _validate(self) -> None:
        pass

    def _next_delay(self) -> float:
        raise NotImplementedError

    def start(self) -> None:
        """Schedule the loop on the running event loop. Starting twice is a no-op."""
        self._validate()
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        """Stop the loop after any in-flight pass. Safe to call repeatedly."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _run(self) -> None:
        logger.info("Scheduled task started", task=self.name)
        while not self._stop_event.is_set():
            await self._run_pass()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._next_delay())
            except asyncio.TimeoutError:
                pass
        logger.info("Scheduled task stopped", task=self.name)

    async def _run_pass(self) -> None:
        try:
            await self._job()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Scheduled pass failed",
                task=self.name,
                error=str(e),
                error_type=type(e).__name__,
            )


class PeriodicTask(_ScheduledTask):
    """Run a job now, then every ``interval`` after each pass completes."""

    def __init__(self, name: str, interval: float | timedelta, job: Job) -> None:
        super().__init__(name, job)
        self.interval = _as_seconds(interval)

    def _validate(self) -> None:
        if self.interval <= 0:
            raise SchedulingError(
                f"{self.name}: interval must be positive, got {self.interval}s"
            )

    def _next_delay(self) -> float:
        return self.interval


class DailyTask(_ScheduledTask):
    """Run a job now, then every day at ``at`` in ``timezone``."""

    def __init__(
        self,
        name: str,
        at: time,
        job: Job,
        timezone: str = "UTC",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(name, job)
        self.at = at
        self.tz = ZoneInfo(timezone)
        self._clock = clock or (lambda: datetime.now(self.tz))

    def seconds_until_next_run(self) -> float:
        """Seconds from now until the next occurrence of ``at``."""
        now = self._clock().astimezone(self.tz)
        target = now.replace(
            hour=self.at.hour, minute=self.at.minute, second=self.at.second, microsecond=0
        )
        if target <= now:
            target = datetime.combine(
                now.date() + timedelta(days=1), self.at, tzinfo=self.tz
            )
        # Same-tzinfo subtraction ignores DST offsets; compare in UTC
        delta = target.astimezone(dt_timezone.utc) - now.astimezone(dt_timezone.utc)
        return max(delta.total_seconds(), 0.0)

    def _next_delay(self) -> float:
        return self.seconds_until_next_run()
