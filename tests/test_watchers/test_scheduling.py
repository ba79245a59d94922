"""Tests for PeriodicTask and DailyTask."""

import asyncio
from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from game_tracker.watchers.scheduling import DailyTask, PeriodicTask, SchedulingError


async def _wait_for(predicate, attempts: int = 50) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)


class TestPeriodicTask:
    """Fixed-delay repetition."""

    @pytest.mark.asyncio
    async def test_runs_immediately_then_repeats(self):
        calls = []

        async def job():
            calls.append(1)

        task = PeriodicTask("test", 0.01, job)
        task.start()
        await _wait_for(lambda: len(calls) >= 3)
        await task.stop()

        assert len(calls) >= 3

    @pytest.mark.asyncio
    async def test_failing_pass_keeps_schedule(self):
        calls = []

        async def job():
            calls.append(1)
            raise RuntimeError("transient")

        task = PeriodicTask("failing", 0.01, job)
        task.start()
        await _wait_for(lambda: len(calls) >= 2)
        await task.stop()

        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_pass(self):
        finished = []
        started = asyncio.Event()

        async def job():
            started.set()
            await asyncio.sleep(0.05)
            finished.append(True)

        task = PeriodicTask("slow", 60, job)
        task.start()
        await started.wait()
        await task.stop()

        assert finished == [True]
        assert task.is_running is False

    @pytest.mark.asyncio
    async def test_stop_before_start_is_noop(self):
        async def job():
            pass

        task = PeriodicTask("idle", 1, job)
        await task.stop()
        await task.stop()

    @pytest.mark.parametrize("interval", [0, -5])
    def test_invalid_interval(self, interval):
        async def job():
            pass

        with pytest.raises(SchedulingError):
            PeriodicTask("bad", interval, job).start()


class TestDailyTask:
    """Wall-clock daily scheduling."""

    @staticmethod
    async def _noop():
        pass

    def test_later_today(self):
        clock = lambda: datetime(2025, 3, 10, 22, 0, tzinfo=timezone.utc)  # noqa: E731
        task = DailyTask("daily", time(23, 30), self._noop, clock=clock)

        assert task.seconds_until_next_run() == 90 * 60

    def test_time_already_passed_rolls_to_tomorrow(self):
        clock = lambda: datetime(2025, 3, 10, 0, 0, 1, tzinfo=timezone.utc)  # noqa: E731
        task = DailyTask("daily", time(0, 0), self._noop, clock=clock)

        assert task.seconds_until_next_run() == 24 * 3600 - 1

    def test_timezone_is_respected(self):
        # 23:00 UTC is already 00:00 on the next day in Paris (winter)
        clock = lambda: datetime(2025, 1, 14, 22, 30, tzinfo=timezone.utc)  # noqa: E731
        task = DailyTask("daily", time(0, 0), self._noop, timezone="Europe/Paris", clock=clock)

        assert task.seconds_until_next_run() == 30 * 60

    def test_dst_transition_day_is_shorter(self):
        # Paris springs forward on 2025-03-30: midnight to midnight is 23 hours
        paris = ZoneInfo("Europe/Paris")
        clock = lambda: datetime(2025, 3, 30, 0, 0, tzinfo=paris)  # noqa: E731
        task = DailyTask("daily", time(0, 0), self._noop, timezone="Europe/Paris", clock=clock)

        assert task.seconds_until_next_run() == 23 * 3600

    @pytest.mark.asyncio
    async def test_runs_immediately_on_start(self):
        calls = []

        async def job():
            calls.append(1)

        task = DailyTask("daily", time(0, 0), job)
        task.start()
        await _wait_for(lambda: calls)
        await task.stop()

        assert calls == [1]
