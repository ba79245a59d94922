"""Persistence of the last-seen update marker per (game, source type)."""

import logging
from abc import ABC, abstractmethod

from game_tracker.entities.freshness import is_newer, stored_marker
from game_tracker.entities.schemas import SourceType
from game_tracker.storage.database import Database

logger = logging.getLogger(__name__)


class UpdateMarkerStore(ABC):
    """Contract for reading and advancing update markers."""

    @abstractmethod
    async def get_marker(self, entity_id: int, source_type: SourceType) -> str | None:
        """Return the stored marker, or None when no baseline exists."""

    @abstractmethod
    async def set_marker(
        self, entity_id: int, source_type: SourceType, marker: str
    ) -> bool:
        """Store a marker. Returns False if it would not move forward."""


class MarkerRepository(UpdateMarkerStore):
    """Markers stored in ``game_sources.last_update``.

    The row for (game, type) is locked while the new marker is compared,
    so a forced check and a scheduled tick cannot regress it.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def get_marker(self, entity_id: int, source_type: SourceType) -> str | None:
        raw = await self._db.fetchval(
            "SELECT last_update FROM game_sources WHERE game_id = $1 AND type = $2",
            entity_id, SourceType(source_type).value,
        )
        return stored_marker(raw)

    async def set_marker(
        self, entity_id: int, source_type: SourceType, marker: str
    ) -> bool:
        type_value = SourceType(source_type).value
        async with self._db.transaction() as conn:
            row = await conn.fetchrow(
                """
                SELECT last_update FROM game_sources
                WHERE game_id = $1 AND type = $2
                FOR UPDATE
                """,
                entity_id, type_value,
            )
            if row is None:
                logger.warning(
                    "No %s source for game %s; marker %s not stored",
                    type_value, entity_id, marker,
                )
                return False

            if not is_newer(marker, stored_marker(row["last_update"])):
                logger.debug(
                    "Refusing to move %s marker for game %s from %s to %s",
                    type_value, entity_id, row["last_update"], marker,
                )
                return False

            await conn.execute(
                "UPDATE game_sources SET last_update = $1 WHERE game_id = $2 AND type = $3",
                marker, entity_id, type_value,
            )
        return True
