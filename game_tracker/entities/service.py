"""
Game registration service.

Mutations of tracked games go through here so that every change is
followed by an immediate re-check (capturing the baseline marker of new
sources) and by a release-date check (announcing a release that is today
or soon without waiting for the daily run).
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

import structlog

from game_tracker.entities.repository import EntityRepository
from game_tracker.entities.schemas import (
    Destination,
    Entity,
    Source,
    SourceType,
)

if TYPE_CHECKING:
    from game_tracker.releases.scheduler import ReleaseScheduler
    from game_tracker.watchers.coordinator import WatcherCoordinator

logger = structlog.get_logger(__name__)

_STEAM_APP_URL = re.compile(r"/app/(\d+)(?:/|$)")
_TWITTER_URL = re.compile(r"(?:twitter|x)\.com/(?:#!/)?(?:\w+/)*([^/?#]+)", re.IGNORECASE)
_TWITTER_HANDLE = re.compile(r"^@?(\w{1,15})$")


class EntityError(Exception):
    """Raised for invalid game registrations or unknown games."""


class DuplicateEntityError(EntityError):
    """Raised when a game with the same normalized name already exists."""


def extract_steam_app_id(value: str) -> str:
    """Accept a Steam app id or a store URL and return the app id."""
    value = value.strip()
    if value.isdigit():
        return value
    match = _STEAM_APP_URL.search(value)
    if not match:
        raise EntityError(f"Not a Steam app id or store URL: {value!r}")
    return match.group(1)


def extract_twitter_handle(value: str) -> str:
    """Accept a handle (with or without @) or a profile URL and return the handle."""
    value = value.strip()
    match = _TWITTER_URL.search(value)
    candidate = match.group(1) if match else value
    handle = _TWITTER_HANDLE.match(candidate)
    if not handle:
        raise EntityError(f"Not a Twitter handle or profile URL: {value!r}")
    return handle.group(1)


def build_sources(steam: str | None = None, twitter: str | None = None) -> list[Source]:
    """Sources for the given upstream references.

    A Steam app registers both the announcements and the press feeds.
    """
    sources = []
    if twitter:
        sources.append(Source(SourceType.TWITTER, extract_twitter_handle(twitter)))
    if steam:
        app_id = extract_steam_app_id(steam)
        sources.append(Source(SourceType.STEAM_INTERNAL, app_id))
        sources.append(Source(SourceType.STEAM_EXTERNAL, app_id))
    return sources


@dataclass
class EntityService:
    """Registers, updates and removes games and guild subscriptions."""

    repository: EntityRepository
    coordinator: "WatcherCoordinator | None" = None
    release_scheduler: "ReleaseScheduler | None" = None

    async def register_game(
        self,
        name: str,
        steam: str | None = None,
        twitter: str | None = None,
        release_date: date | None = None,
    ) -> Entity:
        name = name.strip()
        if not name:
            raise EntityError("Game name is required")
        sources = build_sources(steam, twitter)
        if not sources:
            raise EntityError(f"{name}: at least one Steam or Twitter source is required")

        if await self.repository.get_entity_by_name(name) is not None:
            raise DuplicateEntityError(f"Game {name} is already registered")

        entity = await self.repository.add_entity(name, sources, release_date)
        logger.info("Game registered", entity_id=entity.id, game=name, sources=len(sources))

        await self._after_change(entity, previous_date=None)
        return entity

    async def update_game(
        self,
        name: str,
        steam: str | None = None,
        twitter: str | None = None,
        release_date: date | None = None,
    ) -> Entity:
        """Update a game's sources and/or release date.

        When any source is given, the source list is replaced wholesale by
        the given ones. Unchanged sources keep their markers.
        """
        entity = await self._require(name)
        previous_date = entity.release_date

        if steam or twitter:
            sources = build_sources(steam, twitter)
            await self.repository.replace_sources(entity.id, sources)
            entity.sources = sources

        if release_date is not None and release_date != previous_date:
            await self.repository.set_release_date(entity.id, release_date)
            entity.release_date = release_date

        logger.info("Game updated", entity_id=entity.id, game=entity.name)
        await self._after_change(entity, previous_date=previous_date)
        return entity

    async def remove_game(self, name: str) -> bool:
        entity = await self.repository.get_entity_by_name(name)
        if entity is None:
            return False
        removed = await self.repository.remove_entity(entity.id)
        logger.info("Game removed", entity_id=entity.id, game=entity.name)
        return removed

    async def subscribe(
        self,
        guild_id: str,
        name: str,
        channel_id: str | None = None,
        webhook_url: str | None = None,
    ) -> None:
        """Subscribe a guild to a game, registering its destination if given."""
        entity = await self._require(name)
        if channel_id or webhook_url:
            await self.repository.upsert_destination(
                Destination(guild_id=guild_id, channel_id=channel_id, webhook_url=webhook_url)
            )
        await self.repository.subscribe(guild_id, entity.id)
        logger.info("Guild subscribed", guild_id=guild_id, game=entity.name)

    async def unsubscribe(self, guild_id: str, name: str) -> None:
        entity = await self._require(name)
        await self.repository.unsubscribe(guild_id, entity.id)

    async def _require(self, name: str) -> Entity:
        entity = await self.repository.get_entity_by_name(name)
        if entity is None:
            raise EntityError(f"Game {name} is not registered")
        return entity

    async def _after_change(self, entity: Entity, previous_date: date | None) -> None:
        if self.coordinator is not None:
            await self.coordinator.force_check(entity.id)
        if self.release_scheduler is not None and entity.release_date is not None:
            await self.release_scheduler.on_entity_release_date_set(
                entity, previous_date=previous_date
            )
