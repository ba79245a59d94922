"""Notification sink contract used by the watchers and the release scheduler."""

from abc import ABC, abstractmethod
from datetime import date

from game_tracker.entities.schemas import Entity, NewsItem, SourceType


class DeliveryError(Exception):
    """Raised when a notification could not be delivered to any destination."""

    def __init__(self, message: str, failed: list[str] | None = None) -> None:
        super().__init__(message)
        self.failed = failed or []


class NotificationSink(ABC):
    """Formats and delivers notifications about tracked games.

    Implementations tolerate per-destination failures. They raise
    ``DeliveryError`` only when every destination failed, and treat an
    entity without destinations as a successful no-op.
    """

    @abstractmethod
    async def notify_update(
        self, entity: Entity, source_type: SourceType, item: NewsItem
    ) -> None:
        """Announce a new item from one of the entity's sources."""

    @abstractmethod
    async def notify_released_today(self, entity: Entity) -> None:
        """Announce that the entity releases today."""

    @abstractmethod
    async def notify_releasing_soon(
        self, entity: Entity, release_date: date, days_before: int = 7
    ) -> None:
        """Announce an upcoming release ``days_before`` days ahead."""

    @abstractmethod
    async def notify_release_date_changed(
        self, entity: Entity, old_date: date, new_date: date
    ) -> None:
        """Announce that a known release date was delayed or moved forward."""
