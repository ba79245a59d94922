"""Data models for tracked games, their sources and subscribed destinations.

``Entity`` is a tracked game. Each game has an ordered list of ``Source``
value objects (one per source type) and an optional release date. Discord
guilds subscribe to games through ``Destination`` rows.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from pydantic import BaseModel, Field

_WHITESPACE = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    """Normalize a game name for uniqueness checks (no whitespace, lowercase)."""
    return _WHITESPACE.sub("", name).lower()


class SourceType(str, Enum):
    """Supported upstream source types."""

    STEAM_INTERNAL = "steam_internal"
    STEAM_EXTERNAL = "steam_external"
    TWITTER = "twitter"


# Source types whose identifier is a Steam app id
STEAM_SOURCE_TYPES: frozenset[SourceType] = frozenset({
    SourceType.STEAM_INTERNAL,
    SourceType.STEAM_EXTERNAL,
})


@dataclass
class Source:
    """One upstream feed attached to a game.

    ``last_update`` is the marker of the most recent item already notified
    for this (game, type) pair, or None if no baseline exists yet.
    """

    type: SourceType
    source_id: str
    last_update: str | None = None

    def __post_init__(self) -> None:
        self.type = SourceType(self.type)
        if not self.source_id:
            raise ValueError(f"Source {self.type.value} requires a source_id")


@dataclass
class Entity:
    """A tracked game."""

    id: int
    name: str
    sources: list[Source] = field(default_factory=list)
    release_date: date | None = None

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    def sources_of(self, source_type: SourceType) -> list[Source]:
        """Return the sources of the given type, in stored order."""
        return [s for s in self.sources if s.type == source_type]

    def has_source_type(self, types: frozenset[SourceType] | set[SourceType]) -> bool:
        return any(s.type in types for s in self.sources)


@dataclass
class Destination:
    """A Discord delivery target for one guild.

    Delivery prefers the webhook when both are set.
    """

    guild_id: str
    channel_id: str | None = None
    webhook_url: str | None = None

    def __post_init__(self) -> None:
        self.guild_id = str(self.guild_id)
        if not self.channel_id and not self.webhook_url:
            raise ValueError(
                f"Destination for guild {self.guild_id} needs a channel_id or webhook_url"
            )


class NewsItem(BaseModel):
    """A single item returned by a source fetcher."""

    id: str = Field(..., description="Upstream item identifier")
    date: str = Field(..., description="Publication date (ISO-8601, RFC 2822 or epoch)")
    title: str = ""
    url: str = ""
    content: str = ""
    image: str | None = None
    author: str | None = None
    feed_name: str | None = None
