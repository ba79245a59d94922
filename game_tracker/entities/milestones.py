"""Persistence of release milestones that have already been announced.

A milestone is identified by (game, milestone key, release date). Claiming
it is atomic, so each milestone fires at most once for a given release date
even across restarts. Moving the release date creates new keys.
"""

import logging
from abc import ABC, abstractmethod
from datetime import date

from game_tracker.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS release_milestones (
    game_id      INTEGER NOT NULL REFERENCES games(id) ON DELETE CASCADE,
    milestone    TEXT NOT NULL,
    release_date DATE NOT NULL,
    notified_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (game_id, milestone, release_date)
);
"""


class MilestoneStore(ABC):
    """Contract for at-most-once milestone bookkeeping."""

    @abstractmethod
    async def try_claim(self, entity_id: int, milestone: str, release_date: date) -> bool:
        """Record a milestone. Returns False if it was already claimed."""


class MilestoneRepository(MilestoneStore):
    """Milestones stored in the ``release_milestones`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the release_milestones table (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Release milestones table ensured")

    async def try_claim(self, entity_id: int, milestone: str, release_date: date) -> bool:
        claimed = await self._db.fetchval(
            """
            INSERT INTO release_milestones (game_id, milestone, release_date)
            VALUES ($1, $2, $3)
            ON CONFLICT DO NOTHING
            RETURNING game_id
            """,
            entity_id, milestone, release_date,
        )
        return claimed is not None

    async def purge_before(self, cutoff: date) -> int:
        """Delete milestones of releases older than ``cutoff``."""
        result = await self._db.execute(
            "DELETE FROM release_milestones WHERE release_date < $1", cutoff
        )
        deleted = int(result.split()[-1]) if result else 0
        logger.info("Purged %d release milestones before %s", deleted, cutoff)
        return deleted
