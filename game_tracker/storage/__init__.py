"""Storage layer - PostgreSQL connection management."""

from game_tracker.storage.database import Database

__all__ = ["Database"]
