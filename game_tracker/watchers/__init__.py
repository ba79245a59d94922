"""Polling watchers, their scheduling primitives and coordinator."""

from game_tracker.watchers.coordinator import WatcherCoordinator
from game_tracker.watchers.polling import CheckResult, PollingWatcher
from game_tracker.watchers.scheduling import DailyTask, PeriodicTask, SchedulingError

__all__ = [
    "CheckResult",
    "DailyTask",
    "PeriodicTask",
    "PollingWatcher",
    "SchedulingError",
    "WatcherCoordinator",
]
