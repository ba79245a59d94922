"""Milestone keys and run results of the release scheduler."""

from dataclasses import dataclass, field
from datetime import date

RELEASED_TODAY = "releasing_today"


def upcoming_milestone(days_before: int) -> str:
    """Milestone key for an announcement ``days_before`` days ahead."""
    return f"releasing_in_{days_before}_days"


@dataclass
class ReleaseRunResult:
    """What one daily run did."""

    today: date
    backfilled: list[int] = field(default_factory=list)
    released: list[int] = field(default_factory=list)
    upcoming: list[int] = field(default_factory=list)
    skipped: int = 0
    failed: int = 0
