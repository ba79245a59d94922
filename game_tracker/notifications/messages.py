"""
Discord message builders.

Each builder returns a JSON payload accepted by both webhooks and the
channel messages endpoint (``{"embeds": [...]}``). Steam announcements
carry HTML or BBCode bodies, which are flattened to plain text.
"""

import re
from datetime import date, datetime, time, timezone
from typing import Any

from bs4 import BeautifulSoup

from game_tracker.entities.schemas import Entity, NewsItem, SourceType
from game_tracker.fetchers.base import clean_text

COLOR_STEAM = 0x1B2838
COLOR_TWITTER = 0x1DA1F2
COLOR_RELEASE = 0x57F287
COLOR_UPCOMING = 0xFEE75C
COLOR_DATE_CHANGED = 0xED4245

DESCRIPTION_LIMIT = 4096

_BBCODE_TAG = re.compile(r"\[/?[a-zA-Z0-9*]+(?:=[^\]]*)?\]")
_BLOCK_TAGS = ["p", "div", "li", "h1", "h2", "h3", "h4", "h5", "h6"]

_READ_MORE = {
    SourceType.STEAM_INTERNAL: "... Read more on Steam",
    SourceType.STEAM_EXTERNAL: "... Read more on Steam",
    SourceType.TWITTER: "... Read more on Twitter",
}


def html_to_text(content: str) -> str:
    """Flatten HTML/BBCode content to plain text, keeping line breaks."""
    if not content:
        return ""

    soup = BeautifulSoup(content, "html.parser")
    for element in soup(["img", "script", "style"]):
        element.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")

    # Links keep their target unless the text already is the URL
    for link in soup.find_all("a"):
        href = link.get("href")
        text = link.get_text()
        if href and href != text:
            link.replace_with(f"{text} ({href})" if text else href)

    for block in soup.find_all(_BLOCK_TAGS):
        block.append("\n")

    text = soup.get_text()
    text = _BBCODE_TAG.sub("", text)
    return clean_text(text)


def truncate(content: str, end_message: str, limit: int = DESCRIPTION_LIMIT) -> str:
    """Cut content to ``limit`` characters, ending with ``end_message`` when cut."""
    if len(content) <= limit:
        return content
    return content[: limit - len(end_message)] + end_message


def discord_date(day: date) -> str:
    """Discord timestamp markup rendering a date in each reader's locale."""
    ts = int(datetime.combine(day, time(0, 0), tzinfo=timezone.utc).timestamp())
    return f"<t:{ts}:D>"


def build_update_message(
    entity: Entity,
    source_type: SourceType,
    item: NewsItem,
    limit: int = DESCRIPTION_LIMIT,
) -> dict[str, Any]:
    """Embed for a new item from a game's source."""
    source_type = SourceType(source_type)
    description = truncate(html_to_text(item.content), _READ_MORE[source_type], limit)

    if source_type == SourceType.TWITTER:
        embed: dict[str, Any] = {
            "title": f"{item.title} on X",
            "color": COLOR_TWITTER,
            "footer": {"text": "Twitter"},
        }
    else:
        embed = {
            "title": item.title or entity.name,
            "color": COLOR_STEAM,
            "footer": {"text": item.feed_name or "Steam"},
        }

    if item.url:
        embed["url"] = item.url
    if description:
        embed["description"] = description
    if item.image:
        embed["image"] = {"url": item.image}
    embed["author"] = {"name": entity.name}

    return {"embeds": [embed]}


def build_released_message(entity: Entity) -> dict[str, Any]:
    return {
        "embeds": [{
            "title": f"🎉 {entity.name} has been released!",
            "color": COLOR_RELEASE,
            "footer": {"text": "Release date"},
        }]
    }


def build_releasing_soon_message(
    entity: Entity, release_date: date, days_before: int
) -> dict[str, Any]:
    unit = "day" if days_before == 1 else "days"
    return {
        "embeds": [{
            "title": f"⏳ {entity.name} releases in {days_before} {unit}",
            "description": f"Release date: {discord_date(release_date)}",
            "color": COLOR_UPCOMING,
            "footer": {"text": "Release date"},
        }]
    }


def build_release_date_changed_message(
    entity: Entity, old_date: date, new_date: date
) -> dict[str, Any]:
    if new_date > old_date:
        title = f"📅 {entity.name} has been delayed"
    else:
        title = f"📅 {entity.name} has been moved forward"
    return {
        "embeds": [{
            "title": title,
            "description": (
                f"Release date changed from {discord_date(old_date)} "
                f"to {discord_date(new_date)}"
            ),
            "color": COLOR_DATE_CHANGED,
            "footer": {"text": "Release date"},
        }]
    }
