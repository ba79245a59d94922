"""Tests for the game-tracker CLI commands."""

from datetime import date, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo

import pytest
from click.testing import CliRunner

from game_tracker.cli import main
from game_tracker.config.settings import get_settings
from game_tracker.entities.schemas import Entity
from game_tracker.entities.service import DuplicateEntityError
from game_tracker.releases.schemas import ReleaseRunResult
from game_tracker.watchers.polling import CheckResult


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def application():
    """Application stand-in handed to commands by the patched wiring."""
    app = SimpleNamespace(
        service=MagicMock(),
        repository=MagicMock(),
        coordinator=MagicMock(),
        release_scheduler=MagicMock(),
    )
    app.service.register_game = AsyncMock(return_value=Entity(id=7, name="Hades"))
    app.service.update_game = AsyncMock(return_value=Entity(id=7, name="Hades"))
    app.service.remove_game = AsyncMock(return_value=True)
    app.service.subscribe = AsyncMock()
    app.repository.get_entity_by_name = AsyncMock(return_value=None)
    app.coordinator.force_check = AsyncMock(return_value={})
    app.coordinator.watchers = []
    app.release_scheduler.run_once = AsyncMock()
    return app


@pytest.fixture
def wired(application):
    async def fake_with_application(func):
        return await func(application)

    with patch("game_tracker.cli._with_application", side_effect=fake_with_application):
        yield application


class TestHelp:

    def test_lists_commands(self, runner):
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        for command in ("run", "init-db", "health", "check", "release-check",
                        "add-game", "update-game", "remove-game", "subscribe", "cleanup"):
            assert command in result.output


class TestGameCommands:

    def test_add_game(self, runner, wired):
        result = runner.invoke(
            main,
            ["add-game", "Hades", "--steam", "1145360", "--release-date", "2020-09-17"],
        )

        assert result.exit_code == 0, result.output
        assert "Game Hades added successfully (id=7)" in result.output
        wired.service.register_game.assert_awaited_once_with(
            "Hades", steam="1145360", twitter=None, release_date=date(2020, 9, 17)
        )

    def test_add_duplicate_game_fails(self, runner, wired):
        wired.service.register_game.side_effect = DuplicateEntityError("Game Hades is already registered")

        result = runner.invoke(main, ["add-game", "Hades", "--twitter", "SupergiantGames"])

        assert result.exit_code == 1
        assert "already registered" in result.output

    def test_invalid_release_date(self, runner, wired):
        result = runner.invoke(main, ["add-game", "Hades", "--release-date", "17/09/2020"])

        assert result.exit_code == 2
        wired.service.register_game.assert_not_awaited()

    def test_update_game(self, runner, wired):
        result = runner.invoke(main, ["update-game", "Hades", "--release-date", "2020-10-01"])

        assert result.exit_code == 0, result.output
        kwargs = wired.service.update_game.call_args.kwargs
        assert kwargs["release_date"] == date(2020, 10, 1)

    def test_remove_unknown_game(self, runner, wired):
        wired.service.remove_game.return_value = False

        result = runner.invoke(main, ["remove-game", "Nope"])

        assert result.exit_code == 1
        assert "not registered" in result.output

    def test_subscribe(self, runner, wired):
        result = runner.invoke(
            main, ["subscribe", "123", "Hades", "--webhook-url", "https://discord.com/api/webhooks/1/t"]
        )

        assert result.exit_code == 0, result.output
        wired.service.subscribe.assert_awaited_once_with(
            "123", "Hades", channel_id=None, webhook_url="https://discord.com/api/webhooks/1/t"
        )


class TestCheckCommands:

    def test_check_all_watchers(self, runner, wired):
        watcher = MagicMock()
        watcher.name = "watcher:twitter"
        outcome = CheckResult()
        outcome.add("notified")
        watcher.check_all = AsyncMock(return_value=outcome)
        wired.coordinator.watchers = [watcher]

        result = runner.invoke(main, ["check"])

        assert result.exit_code == 0, result.output
        assert "watcher:twitter" in result.output
        watcher.check_all.assert_awaited_once()

    def test_check_unknown_game(self, runner, wired):
        result = runner.invoke(main, ["check", "--game", "Nope"])

        assert result.exit_code == 1
        wired.coordinator.force_check.assert_not_awaited()

    def test_check_one_game(self, runner, wired):
        wired.repository.get_entity_by_name.return_value = Entity(id=7, name="Hades")

        result = runner.invoke(main, ["check", "--game", "Hades"])

        assert result.exit_code == 0, result.output
        wired.coordinator.force_check.assert_awaited_once_with(7)

    def test_release_check_with_date(self, runner, wired):
        wired.release_scheduler.run_once.return_value = ReleaseRunResult(
            today=date(2025, 3, 10), released=[1], skipped=2
        )

        result = runner.invoke(main, ["release-check", "--date", "2025-03-10"])

        assert result.exit_code == 0, result.output
        wired.release_scheduler.run_once.assert_awaited_once_with(today=date(2025, 3, 10))
        assert "Released today: 1" in result.output
        assert "Already announced: 2" in result.output


class TestCleanup:

    def test_purges_old_milestones(self, runner):
        db = MagicMock()
        db.connect = AsyncMock()
        db.close = AsyncMock()

        with patch("game_tracker.storage.database.Database", return_value=db), \
                patch("game_tracker.entities.milestones.MilestoneRepository.purge_before",
                      new=AsyncMock(return_value=3)) as purge:
            result = runner.invoke(main, ["cleanup", "--days", "10"])

        assert result.exit_code == 0, result.output
        assert "Deleted 3 milestones" in result.output
        purge.assert_awaited_once()
        db.close.assert_awaited_once()

    def test_cutoff_uses_release_timezone(self, runner, monkeypatch):
        db = MagicMock()
        db.connect = AsyncMock()
        db.close = AsyncMock()
        monkeypatch.setenv("RELEASE_TIMEZONE", "Pacific/Kiritimati")
        get_settings.cache_clear()

        try:
            with patch("game_tracker.storage.database.Database", return_value=db), \
                    patch("game_tracker.entities.milestones.MilestoneRepository.purge_before",
                          new=AsyncMock(return_value=0)) as purge:
                result = runner.invoke(main, ["cleanup", "--days", "10"])
        finally:
            get_settings.cache_clear()

        assert result.exit_code == 0, result.output
        today = datetime.now(ZoneInfo("Pacific/Kiritimati")).date()
        purge.assert_awaited_once_with(today - timedelta(days=10))


class TestDebugFlag:

    def test_debug_overrides_log_level(self, runner):
        with patch("game_tracker.cli.setup_logging") as setup:
            result = runner.invoke(main, ["--debug", "cleanup", "--help"])

        assert result.exit_code == 0
        setup.assert_called_once_with(level="DEBUG")
