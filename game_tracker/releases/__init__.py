"""Release date tracking and announcements."""

from game_tracker.releases.scheduler import ReleaseScheduler
from game_tracker.releases.schemas import RELEASED_TODAY, ReleaseRunResult, upcoming_milestone

__all__ = [
    "RELEASED_TODAY",
    "ReleaseRunResult",
    "ReleaseScheduler",
    "upcoming_milestone",
]
