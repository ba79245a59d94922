"""Tracked games, their sources, markers and release milestones."""

from game_tracker.entities.freshness import (
    MarkerError,
    derive_marker,
    is_newer,
    newest_item,
    stored_marker,
)
from game_tracker.entities.markers import MarkerRepository, UpdateMarkerStore
from game_tracker.entities.milestones import MilestoneRepository, MilestoneStore
from game_tracker.entities.repository import EntityRegistry, EntityRepository
from game_tracker.entities.schemas import (
    STEAM_SOURCE_TYPES,
    Destination,
    Entity,
    NewsItem,
    Source,
    SourceType,
    normalize_name,
)
from game_tracker.entities.service import DuplicateEntityError, EntityError, EntityService

__all__ = [
    "STEAM_SOURCE_TYPES",
    "Destination",
    "DuplicateEntityError",
    "Entity",
    "EntityError",
    "EntityRegistry",
    "EntityRepository",
    "EntityService",
    "MarkerError",
    "MarkerRepository",
    "MilestoneRepository",
    "MilestoneStore",
    "NewsItem",
    "Source",
    "SourceType",
    "UpdateMarkerStore",
    "derive_marker",
    "is_newer",
    "newest_item",
    "normalize_name",
    "stored_marker",
]
