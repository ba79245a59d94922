"""Marker derivation and comparison for fetched news items.

A marker is the publication time of an item as epoch milliseconds, encoded
as a string. Markers of the same (game, source type) pair only ever move
forward.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from game_tracker.entities.schemas import NewsItem

# Epoch values above this are treated as milliseconds rather than seconds
_MILLIS_THRESHOLD = 10**11


class MarkerError(ValueError):
    """Raised when an item's date cannot be turned into a marker."""


def _parse_date(raw: str) -> datetime:
    value = raw.strip()
    if not value:
        raise MarkerError("empty date")

    if value.lstrip("-").isdigit():
        number = int(value)
        seconds = number / 1000 if abs(number) >= _MILLIS_THRESHOLD else number
        return datetime.fromtimestamp(seconds, tz=timezone.utc)

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError) as e:
            raise MarkerError(f"unrecognized date {raw!r}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _millis(parsed: datetime) -> str:
    return str(round(parsed.timestamp() * 1000))


def derive_marker(item: NewsItem) -> str:
    """Return the marker for a news item.

    Raises:
        MarkerError: If the item date is missing or malformed.
    """
    return _millis(_parse_date(str(item.date)))


def stored_marker(raw: str | None) -> str | None:
    """Normalize a marker read back from storage.

    Rows written before markers were epoch milliseconds may hold an empty
    string, a date string or garbage such as "NaN". Date strings are
    converted; anything else counts as no marker, so the next check stores
    a fresh baseline instead of comparing against it.
    """
    if raw is None:
        return None
    value = raw.strip()
    if value.lstrip("-").isdigit():
        return str(int(value))
    try:
        return _millis(_parse_date(value))
    except MarkerError:
        return None


def is_newer(candidate: str, stored: str | None) -> bool:
    """Whether ``candidate`` is strictly fresher than ``stored``.

    Any marker is newer than a missing one. ``stored`` must already be
    normalized with ``stored_marker()``.
    """
    if stored is None:
        return True
    return int(candidate) > int(stored)


def newest_item(items: list[NewsItem]) -> tuple[NewsItem, str]:
    """Pick the freshest item and its marker.

    Feeds are expected newest-first, but social timelines can arrive out of
    order, so every item is considered. Items with malformed dates are
    ignored unless none is usable.

    Raises:
        MarkerError: If no item has a usable date.
    """
    best: tuple[NewsItem, str] | None = None
    for item in items:
        try:
            marker = derive_marker(item)
        except MarkerError:
            continue
        if best is None or is_newer(marker, best[1]):
            best = (item, marker)

    if best is None:
        raise MarkerError(f"none of {len(items)} items has a usable date")
    return best
