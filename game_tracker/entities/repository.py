"""Database repository for games, their sources, and subscribed guilds."""

import logging
from abc import ABC, abstractmethod
from datetime import date

from game_tracker.entities.schemas import (
    Destination,
    Entity,
    Source,
    SourceType,
    normalize_name,
)
from game_tracker.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS games (
    id              SERIAL PRIMARY KEY,
    name            TEXT NOT NULL,
    normalized_name TEXT NOT NULL UNIQUE,
    release_date    DATE NULL,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_games_release_date
    ON games(release_date);

CREATE TABLE IF NOT EXISTS game_sources (
    game_id     INTEGER NOT NULL REFERENCES games(id) ON DELETE CASCADE,
    type        TEXT NOT NULL,
    source_id   TEXT NOT NULL,
    position    INTEGER NOT NULL DEFAULT 0,
    last_update TEXT NULL,
    PRIMARY KEY (game_id, type)
);

CREATE TABLE IF NOT EXISTS guilds (
    id          TEXT PRIMARY KEY,
    channel_id  TEXT NULL,
    webhook_url TEXT NULL,
    CHECK (channel_id IS NOT NULL OR webhook_url IS NOT NULL)
);

CREATE TABLE IF NOT EXISTS guild_games (
    guild_id TEXT NOT NULL REFERENCES guilds(id) ON DELETE CASCADE,
    game_id  INTEGER NOT NULL REFERENCES games(id) ON DELETE CASCADE,
    PRIMARY KEY (guild_id, game_id)
);
"""

_SELECT_GAMES_SQL = """
SELECT g.id, g.name, g.release_date, gs.type, gs.source_id, gs.last_update
FROM games g
LEFT JOIN game_sources gs ON g.id = gs.game_id
{where}
ORDER BY g.name, g.id, gs.position
"""

_INSERT_SOURCE_SQL = """
INSERT INTO game_sources (game_id, type, source_id, position, last_update)
VALUES ($1, $2, $3, $4, $5)
"""


def _rows_to_entities(rows) -> list[Entity]:
    """Group joined game/source rows into Entity objects, keeping row order."""
    entities: dict[int, Entity] = {}
    for row in rows:
        entity = entities.get(row["id"])
        if entity is None:
            entity = Entity(
                id=row["id"],
                name=row["name"],
                release_date=row["release_date"],
            )
            entities[row["id"]] = entity

        if row["type"] and row["source_id"]:
            entity.sources.append(
                Source(
                    type=SourceType(row["type"]),
                    source_id=row["source_id"],
                    last_update=row["last_update"],
                )
            )
    return list(entities.values())


class EntityRegistry(ABC):
    """Read-side contract the watchers and the release scheduler rely on."""

    @abstractmethod
    async def list_entities(self) -> list[Entity]:
        """All tracked games with their sources."""

    @abstractmethod
    async def get_entity(self, entity_id: int) -> Entity | None:
        """A single game, or None if it does not exist."""

    @abstractmethod
    async def list_entities_missing_release_date(self) -> list[Entity]:
        """Games whose release date is unknown."""

    @abstractmethod
    async def list_entities_releasing_on(self, day: date) -> list[Entity]:
        """Games releasing on the given calendar date."""

    @abstractmethod
    async def set_release_date(self, entity_id: int, release_date: date) -> None:
        """Persist a release date for a game."""

    @abstractmethod
    async def list_destinations(self, entity_id: int) -> list[Destination]:
        """Destinations subscribed to a game."""


class EntityRepository(EntityRegistry):
    """CRUD operations for games, game_sources, guilds and guild_games."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the game tables and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLES_SQL)
        logger.info("Game tables ensured")

    # ── Registry reads ──────────────────────────────────────────

    async def list_entities(self) -> list[Entity]:
        rows = await self._db.fetch(_SELECT_GAMES_SQL.format(where=""))
        return _rows_to_entities(rows)

    async def get_entity(self, entity_id: int) -> Entity | None:
        rows = await self._db.fetch(
            _SELECT_GAMES_SQL.format(where="WHERE g.id = $1"), entity_id
        )
        entities = _rows_to_entities(rows)
        return entities[0] if entities else None

    async def get_entity_by_name(self, name: str) -> Entity | None:
        """Look up a game by its normalized name."""
        rows = await self._db.fetch(
            _SELECT_GAMES_SQL.format(where="WHERE g.normalized_name = $1"),
            normalize_name(name),
        )
        entities = _rows_to_entities(rows)
        return entities[0] if entities else None

    async def list_entities_missing_release_date(self) -> list[Entity]:
        rows = await self._db.fetch(
            _SELECT_GAMES_SQL.format(where="WHERE g.release_date IS NULL")
        )
        return _rows_to_entities(rows)

    async def list_entities_releasing_on(self, day: date) -> list[Entity]:
        rows = await self._db.fetch(
            _SELECT_GAMES_SQL.format(where="WHERE g.release_date = $1"), day
        )
        return _rows_to_entities(rows)

    async def set_release_date(self, entity_id: int, release_date: date | None) -> None:
        await self._db.execute(
            "UPDATE games SET release_date = $1, updated_at = NOW() WHERE id = $2",
            release_date, entity_id,
        )
        logger.info("Updated release date to %s for game %s", release_date, entity_id)

    async def list_destinations(self, entity_id: int) -> list[Destination]:
        rows = await self._db.fetch(
            """
            SELECT gu.id, gu.channel_id, gu.webhook_url
            FROM guilds gu
            JOIN guild_games gg ON gu.id = gg.guild_id
            WHERE gg.game_id = $1
            ORDER BY gu.id
            """,
            entity_id,
        )
        return [
            Destination(
                guild_id=row["id"],
                channel_id=row["channel_id"],
                webhook_url=row["webhook_url"],
            )
            for row in rows
        ]

    # ── Mutations ───────────────────────────────────────────────

    async def add_entity(
        self,
        name: str,
        sources: list[Source],
        release_date: date | None = None,
    ) -> Entity:
        """Insert a game and its sources in one transaction."""
        async with self._db.transaction() as conn:
            entity_id = await conn.fetchval(
                """
                INSERT INTO games (name, normalized_name, release_date)
                VALUES ($1, $2, $3)
                RETURNING id
                """,
                name, normalize_name(name), release_date,
            )
            for position, source in enumerate(sources):
                await conn.execute(
                    _INSERT_SOURCE_SQL,
                    entity_id, source.type.value, source.source_id, position,
                    source.last_update,
                )

        logger.info("Added game %s (id=%s) with %d sources", name, entity_id, len(sources))
        return Entity(
            id=entity_id,
            name=name,
            sources=list(sources),
            release_date=release_date,
        )

    async def replace_sources(self, entity_id: int, sources: list[Source]) -> None:
        """Replace a game's source list wholesale.

        A source keeps its stored marker when its (type, source_id) pair is
        unchanged; a new or re-pointed source starts without one.
        """
        async with self._db.transaction() as conn:
            rows = await conn.fetch(
                "SELECT type, source_id, last_update FROM game_sources WHERE game_id = $1",
                entity_id,
            )
            previous = {(r["type"], r["source_id"]): r["last_update"] for r in rows}

            await conn.execute("DELETE FROM game_sources WHERE game_id = $1", entity_id)
            for position, source in enumerate(sources):
                marker = previous.get((source.type.value, source.source_id))
                await conn.execute(
                    _INSERT_SOURCE_SQL,
                    entity_id, source.type.value, source.source_id, position, marker,
                )
            await conn.execute(
                "UPDATE games SET updated_at = NOW() WHERE id = $1", entity_id
            )

        logger.debug("Replaced sources for game %s: %s", entity_id, sources)

    async def remove_entity(self, entity_id: int) -> bool:
        """Delete a game; sources and subscriptions cascade."""
        result = await self._db.execute("DELETE FROM games WHERE id = $1", entity_id)
        return result.endswith("1")

    async def upsert_destination(self, destination: Destination) -> None:
        await self._db.execute(
            """
            INSERT INTO guilds (id, channel_id, webhook_url)
            VALUES ($1, $2, $3)
            ON CONFLICT (id) DO UPDATE SET
                channel_id = EXCLUDED.channel_id,
                webhook_url = EXCLUDED.webhook_url
            """,
            destination.guild_id, destination.channel_id, destination.webhook_url,
        )

    async def subscribe(self, guild_id: str, entity_id: int) -> None:
        await self._db.execute(
            """
            INSERT INTO guild_games (guild_id, game_id) VALUES ($1, $2)
            ON CONFLICT DO NOTHING
            """,
            str(guild_id), entity_id,
        )

    async def unsubscribe(self, guild_id: str, entity_id: int) -> None:
        await self._db.execute(
            "DELETE FROM guild_games WHERE guild_id = $1 AND game_id = $2",
            str(guild_id), entity_id,
        )
