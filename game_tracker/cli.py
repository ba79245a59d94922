"""
Command-line interface for game-tracker.

Provides commands to run the watchers, manage tracked games and
subscriptions, and run one-off checks.

Usage:
    game-tracker run            # Run all watchers and the release scheduler
    game-tracker init-db        # Initialize database
    game-tracker health         # Check service health
    game-tracker check          # One polling pass on every watcher
    game-tracker release-check  # One release scheduler run
    game-tracker add-game NAME --steam 1145360 --twitter SupergiantGames
"""

import asyncio
import signal
import sys
from collections.abc import Awaitable, Callable
from datetime import date, datetime, timedelta
from typing import Any, TypeVar
from zoneinfo import ZoneInfo

import click

from game_tracker.config.settings import get_settings
from game_tracker.observability.logging import setup_logging
from game_tracker.observability.metrics import get_metrics

T = TypeVar("T")

DATE_FORMATS = ["%Y-%m-%d"]


def _as_date(value: datetime | None) -> date | None:
    return value.date() if value is not None else None


async def _with_application(func: Callable[[Any], Awaitable[T]]) -> T:
    """Connect, wire the application, run ``func`` and tear everything down."""
    from game_tracker.app import build_application
    from game_tracker.storage.database import Database

    db = Database()
    await db.connect()
    try:
        application = await build_application(db)
        try:
            return await func(application)
        finally:
            await application.coordinator.stop_all()
    finally:
        await db.close()


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Game Tracker - Steam and Twitter news for Discord guilds."""
    setup_logging(level="DEBUG" if debug else None)


@main.command()
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def run(metrics: bool, metrics_port: int | None) -> None:
    """Run every watcher and the release scheduler until interrupted."""

    async def serve(application: Any) -> None:
        if metrics:
            get_metrics().start_server(port=metrics_port)

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)

        await application.coordinator.start_all()
        click.echo(
            f"Watching with {len(application.coordinator.watchers)} watchers. "
            "Press Ctrl+C to stop."
        )
        await stop_event.wait()
        click.echo("Shutting down, waiting for in-flight checks...")

    asyncio.run(_with_application(serve))


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from game_tracker.app import create_tables
    from game_tracker.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            await create_tables(db)
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check PostgreSQL
        try:
            from game_tracker.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        settings = get_settings()
        results["discord_bot_configured"] = settings.discord_configured
        results["twitter_configured"] = settings.twitter_configured

        # Print results
        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))

        click.echo("-" * 40)

        if results["postgres"]:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


@main.command()
@click.option("--game", default=None, help="Only check this game")
def check(game: str | None) -> None:
    """Run one polling pass on every watcher."""

    async def run(application: Any) -> None:
        coordinator = application.coordinator
        if game is None:
            for watcher in coordinator.watchers:
                result = await watcher.check_all()
                click.echo(f"{watcher.name}: {result.counts}")
            return

        entity = await application.repository.get_entity_by_name(game)
        if entity is None:
            raise click.ClickException(f"Game {game} is not registered")
        results = await coordinator.force_check(entity.id)
        for name, result in results.items():
            click.echo(f"{name}: {result.counts}")

    asyncio.run(_with_application(run))


@main.command("release-check")
@click.option("--date", "target_date", default=None, type=click.DateTime(formats=DATE_FORMATS),
              help="Run as if today were this date (YYYY-MM-DD)")
def release_check(target_date: datetime | None) -> None:
    """Run the release scheduler once (backfill, today, upcoming)."""

    async def run(application: Any) -> None:
        result = await application.release_scheduler.run_once(today=_as_date(target_date))
        click.echo(f"Release check for {result.today.isoformat()}:")
        click.echo(f"  Backfilled: {len(result.backfilled)}")
        click.echo(f"  Released today: {len(result.released)}")
        click.echo(f"  Upcoming: {len(result.upcoming)}")
        click.echo(f"  Already announced: {result.skipped}")
        click.echo(f"  Failed: {result.failed}")

    asyncio.run(_with_application(run))


@main.command("add-game")
@click.argument("name")
@click.option("--steam", default=None, help="Steam app id or store URL")
@click.option("--twitter", default=None, help="Twitter handle or profile URL")
@click.option("--release-date", default=None, type=click.DateTime(formats=DATE_FORMATS),
              help="Release date (YYYY-MM-DD)")
def add_game(name: str, steam: str | None, twitter: str | None, release_date: datetime | None) -> None:
    """Register a game to track."""
    from game_tracker.entities.service import EntityError

    async def run(application: Any) -> None:
        try:
            entity = await application.service.register_game(
                name, steam=steam, twitter=twitter, release_date=_as_date(release_date)
            )
        except EntityError as e:
            raise click.ClickException(str(e)) from e
        click.echo(f"Game {entity.name} added successfully (id={entity.id})")

    asyncio.run(_with_application(run))


@main.command("update-game")
@click.argument("name")
@click.option("--steam", default=None, help="Steam app id or store URL")
@click.option("--twitter", default=None, help="Twitter handle or profile URL")
@click.option("--release-date", default=None, type=click.DateTime(formats=DATE_FORMATS),
              help="Release date (YYYY-MM-DD)")
def update_game(
    name: str, steam: str | None, twitter: str | None, release_date: datetime | None
) -> None:
    """Update a game's sources or release date."""
    from game_tracker.entities.service import EntityError

    async def run(application: Any) -> None:
        try:
            entity = await application.service.update_game(
                name, steam=steam, twitter=twitter, release_date=_as_date(release_date)
            )
        except EntityError as e:
            raise click.ClickException(str(e)) from e
        click.echo(f"Game {entity.name} updated successfully!")

    asyncio.run(_with_application(run))


@main.command("remove-game")
@click.argument("name")
def remove_game(name: str) -> None:
    """Stop tracking a game."""

    async def run(application: Any) -> None:
        if not await application.service.remove_game(name):
            raise click.ClickException(f"Game {name} is not registered")
        click.echo(f"Game {name} removed")

    asyncio.run(_with_application(run))


@main.command()
@click.argument("guild_id")
@click.argument("name")
@click.option("--channel-id", default=None, help="Channel for bot delivery")
@click.option("--webhook-url", default=None, help="Webhook for delivery (preferred)")
def subscribe(guild_id: str, name: str, channel_id: str | None, webhook_url: str | None) -> None:
    """Subscribe a Discord guild to a game."""
    from game_tracker.entities.service import EntityError

    async def run(application: Any) -> None:
        try:
            await application.service.subscribe(
                guild_id, name, channel_id=channel_id, webhook_url=webhook_url
            )
        except (EntityError, ValueError) as e:
            raise click.ClickException(str(e)) from e
        click.echo(f"Guild {guild_id} subscribed to {name}")

    asyncio.run(_with_application(run))


@main.command()
@click.option("--days", default=30, help="Keep milestones of releases in the last N days")
def cleanup(days: int) -> None:
    """Remove announced milestones of releases older than specified days.

    Example:
        game-tracker cleanup --days 30
    """
    from game_tracker.entities.milestones import MilestoneRepository
    from game_tracker.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            today = datetime.now(ZoneInfo(get_settings().release_timezone)).date()
            cutoff = today - timedelta(days=days)
            deleted = await MilestoneRepository(db).purge_before(cutoff)
            click.echo(f"\nDeleted {deleted} milestones of releases before {cutoff.isoformat()}")
        finally:
            await db.close()

    asyncio.run(run())


if __name__ == "__main__":
    main()
