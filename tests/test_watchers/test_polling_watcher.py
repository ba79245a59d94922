"""Tests for PollingWatcher check passes."""

import asyncio
from datetime import timedelta

import httpx
import pytest

from game_tracker.entities.schemas import Entity, Source, SourceType
from game_tracker.fetchers.base import FetchError
from game_tracker.watchers.polling import PollingWatcher
from game_tracker.watchers.scheduling import SchedulingError

T0 = 1_700_000_000_000
HOUR_MS = 3_600_000


def _game(entity_id: int, app_id: str | None = None) -> Entity:
    return Entity(
        id=entity_id,
        name=f"Game {entity_id}",
        sources=[Source(SourceType.STEAM_INTERNAL, app_id or str(entity_id * 100))],
    )


@pytest.fixture
def watcher(fetcher, sink, registry, markers) -> PollingWatcher:
    return PollingWatcher(
        check_interval=timedelta(hours=5),
        fetcher=fetcher,
        sink=sink,
        registry=registry,
        markers=markers,
        fetch_timeout=1.0,
    )


# ── Baseline and change detection ───────────────────────


class TestChangeDetection:
    """Marker comparison and notification rules."""

    @pytest.mark.asyncio
    async def test_first_check_stores_baseline_silently(
        self, watcher, fetcher, sink, registry, markers, item_factory
    ):
        registry.add(_game(1))
        fetcher.items["100"] = [item_factory(T0)]

        result = await watcher.check_all()

        assert sink.updates == []
        assert markers.markers[(1, SourceType.STEAM_INTERNAL)] == str(T0)
        assert result.counts["baseline"] == 1

    @pytest.mark.asyncio
    async def test_second_check_with_newer_item_notifies_once(
        self, watcher, fetcher, sink, registry, markers, item_factory
    ):
        registry.add(_game(1))
        fetcher.items["100"] = [item_factory(T0)]
        await watcher.check_all()

        newer = item_factory(T0 + HOUR_MS, title="Update 1.1")
        fetcher.items["100"] = [newer, item_factory(T0)]
        result = await watcher.check_all()

        assert len(sink.updates) == 1
        entity, source_type, item = sink.updates[0]
        assert entity.id == 1
        assert source_type == SourceType.STEAM_INTERNAL
        assert item.title == "Update 1.1"
        assert markers.markers[(1, SourceType.STEAM_INTERNAL)] == str(T0 + HOUR_MS)
        assert result.notified == 1

    @pytest.mark.asyncio
    async def test_unchanged_item_never_notifies_twice(
        self, watcher, fetcher, sink, registry, markers, item_factory
    ):
        registry.add(_game(1))
        markers.markers[(1, SourceType.STEAM_INTERNAL)] = str(T0)
        fetcher.items["100"] = [item_factory(T0 + HOUR_MS)]

        for _ in range(4):
            await watcher.check_all()

        assert len(sink.updates) == 1

    @pytest.mark.asyncio
    async def test_equal_marker_makes_no_calls(
        self, watcher, fetcher, sink, registry, markers, item_factory
    ):
        registry.add(_game(1))
        markers.markers[(1, SourceType.STEAM_INTERNAL)] = "1700000000000"
        fetcher.items["100"] = [item_factory(1_700_000_000_000)]

        result = await watcher.check_all()

        assert sink.updates == []
        assert markers.set_calls == []
        assert result.counts["unchanged"] == 1

    @pytest.mark.asyncio
    async def test_older_item_does_not_move_marker_back(
        self, watcher, fetcher, sink, registry, markers, item_factory
    ):
        registry.add(_game(1))
        markers.markers[(1, SourceType.STEAM_INTERNAL)] = str(T0)
        fetcher.items["100"] = [item_factory(T0 - HOUR_MS)]

        await watcher.check_all()

        assert sink.updates == []
        assert markers.set_calls == []
        assert markers.markers[(1, SourceType.STEAM_INTERNAL)] == str(T0)

    @pytest.mark.asyncio
    async def test_markers_only_move_forward_over_many_passes(
        self, watcher, fetcher, registry, markers, item_factory
    ):
        registry.add(_game(1))
        key = (1, SourceType.STEAM_INTERNAL)
        previous = None
        for offset in (0, 3, 1, 3, 5, 2):
            fetcher.items["100"] = [item_factory(T0 + offset * HOUR_MS)]
            await watcher.check_all()
            current = int(markers.markers[key])
            if previous is not None:
                assert current >= previous
            previous = current

        assert previous == T0 + 5 * HOUR_MS

    @pytest.mark.asyncio
    async def test_freshest_item_wins_when_out_of_order(
        self, watcher, fetcher, sink, registry, markers, item_factory
    ):
        registry.add(_game(1))
        markers.markers[(1, SourceType.STEAM_INTERNAL)] = str(T0)
        fetcher.items["100"] = [
            item_factory(T0 + HOUR_MS, title="older"),
            item_factory(T0 + 2 * HOUR_MS, title="newest"),
        ]

        await watcher.check_all()

        assert [item.title for _, _, item in sink.updates] == ["newest"]

    @pytest.mark.asyncio
    async def test_empty_or_none_result_is_skipped(
        self, watcher, fetcher, sink, registry, markers
    ):
        registry.add(_game(1))
        registry.add(_game(2))
        fetcher.items["100"] = []
        fetcher.items["200"] = None

        result = await watcher.check_all()

        assert result.counts["empty"] == 2
        assert markers.set_calls == []
        assert sink.updates == []

    @pytest.mark.asyncio
    async def test_only_sources_of_watcher_type_are_checked(
        self, watcher, fetcher, registry, nova, item_factory
    ):
        registry.add(nova)
        fetcher.items["1000"] = [item_factory(T0)]

        await watcher.check_all()

        assert fetcher.calls == ["1000"]

    @pytest.mark.asyncio
    async def test_unusable_dates_are_a_data_error(
        self, watcher, fetcher, sink, registry, markers
    ):
        from game_tracker.entities.schemas import NewsItem

        registry.add(_game(1))
        fetcher.items["100"] = [NewsItem(id="x", date="not a date")]

        result = await watcher.check_all()

        assert result.failed == 1
        assert markers.set_calls == []


# ── Failure handling ────────────────────────────────────


class TestFailureHandling:
    """Per-source failures never abort a pass."""

    @pytest.mark.asyncio
    async def test_failing_fetch_does_not_stop_other_entities(
        self, watcher, fetcher, registry, markers, item_factory
    ):
        for entity_id in (1, 2, 3):
            registry.add(_game(entity_id))
        fetcher.items["100"] = [item_factory(T0)]
        fetcher.errors["200"] = FetchError("boom")
        fetcher.items["300"] = [item_factory(T0)]

        result = await watcher.check_all()

        assert fetcher.calls == ["100", "200", "300"]
        assert result.failed == 1
        assert (1, SourceType.STEAM_INTERNAL) in markers.markers
        assert (3, SourceType.STEAM_INTERNAL) in markers.markers
        assert (2, SourceType.STEAM_INTERNAL) not in markers.markers

    @pytest.mark.asyncio
    async def test_unexpected_fetch_exception_is_isolated(
        self, watcher, fetcher, registry, item_factory
    ):
        registry.add(_game(1))
        registry.add(_game(2))
        fetcher.errors["100"] = KeyError("surprise")
        fetcher.items["200"] = [item_factory(T0)]

        result = await watcher.check_all()

        assert result.counts["failed"] == 1
        assert result.counts["baseline"] == 1

    @pytest.mark.asyncio
    async def test_http_error_is_isolated(self, watcher, fetcher, registry):
        registry.add(_game(1))
        fetcher.errors["100"] = httpx.ConnectError("refused")

        result = await watcher.check_all()

        assert result.failed == 1

    @pytest.mark.asyncio
    async def test_delivery_failure_keeps_marker_and_retries_next_pass(
        self, watcher, fetcher, sink, registry, markers, item_factory
    ):
        registry.add(_game(1))
        markers.markers[(1, SourceType.STEAM_INTERNAL)] = str(T0)
        fetcher.items["100"] = [item_factory(T0 + HOUR_MS)]

        sink.fail = True
        first = await watcher.check_all()
        assert first.failed == 1
        assert markers.markers[(1, SourceType.STEAM_INTERNAL)] == str(T0)
        assert markers.set_calls == []

        sink.fail = False
        second = await watcher.check_all()
        assert second.notified == 1
        assert len(sink.updates) == 1
        assert markers.markers[(1, SourceType.STEAM_INTERNAL)] == str(T0 + HOUR_MS)

    @pytest.mark.asyncio
    async def test_slow_fetch_times_out(self, fetcher, sink, registry, markers):
        async def hang(source_id):
            await asyncio.sleep(10)

        fetcher.fetch_latest = hang
        registry.add(_game(1))
        watcher = PollingWatcher(
            check_interval=60,
            fetcher=fetcher,
            sink=sink,
            registry=registry,
            markers=markers,
            fetch_timeout=0.05,
        )

        result = await watcher.check_all()

        assert result.failed == 1
        assert markers.set_calls == []

    @pytest.mark.asyncio
    async def test_registry_failure_propagates(self, watcher, registry):
        registry.fail_listing = True

        with pytest.raises(ConnectionError):
            await watcher.check_all()


# ── check_one and overlap ───────────────────────────────


class TestCheckOne:
    """On-demand checks of a single game."""

    @pytest.mark.asyncio
    async def test_check_one_only_touches_that_entity(
        self, watcher, fetcher, registry, markers, item_factory
    ):
        registry.add(_game(1))
        registry.add(_game(2))
        fetcher.items["100"] = [item_factory(T0)]
        fetcher.items["200"] = [item_factory(T0)]

        result = await watcher.check_one(2)

        assert fetcher.calls == ["200"]
        assert result.counts["baseline"] == 1
        assert list(markers.markers) == [(2, SourceType.STEAM_INTERNAL)]

    @pytest.mark.asyncio
    async def test_check_one_unknown_entity(self, watcher, fetcher):
        result = await watcher.check_one(999)

        assert result.checked == 0
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_overlapping_pass_is_skipped(
        self, watcher, fetcher, registry, item_factory
    ):
        release = asyncio.Event()

        async def slow(source_id):
            await release.wait()
            return [item_factory(T0)]

        fetcher.fetch_latest = slow
        registry.add(_game(1))

        first = asyncio.create_task(watcher.check_all())
        await asyncio.sleep(0)
        second = await watcher.check_all()
        release.set()
        first_result = await first

        assert second.skipped is True
        assert first_result.skipped is False

    @pytest.mark.asyncio
    async def test_pass_waits_for_forced_check_instead_of_skipping(
        self, watcher, fetcher, registry, item_factory
    ):
        registry.add(_game(1))
        registry.add(_game(2))
        fetcher.items["100"] = [item_factory(T0)]
        fetcher.items["200"] = [item_factory(T0)]
        release = asyncio.Event()
        fetch = fetcher.fetch_latest

        async def gated(source_id):
            if source_id == "100" and not release.is_set():
                await release.wait()
            return await fetch(source_id)

        fetcher.fetch_latest = gated

        forced = asyncio.create_task(watcher.check_one(1))
        await asyncio.sleep(0.01)
        scheduled = asyncio.create_task(watcher.check_all())
        await asyncio.sleep(0.01)
        assert not scheduled.done()

        release.set()
        await forced
        result = await scheduled

        assert result.skipped is False
        assert result.checked == 2
        assert fetcher.calls.count("200") == 1


# ── Scheduling ──────────────────────────────────────────


class TestWatcherScheduling:
    """start()/stop() lifecycle."""

    @pytest.mark.asyncio
    async def test_start_runs_immediately_and_stop_is_idempotent(
        self, fetcher, sink, registry, markers, item_factory
    ):
        registry.add(_game(1))
        fetcher.items["100"] = [item_factory(T0)]
        watcher = PollingWatcher(60, fetcher, sink, registry, markers)

        watcher.start()
        for _ in range(20):
            if fetcher.calls:
                break
            await asyncio.sleep(0.01)
        await watcher.stop()
        await watcher.stop()

        assert fetcher.calls == ["100"]
        assert watcher.is_running is False

    @pytest.mark.asyncio
    async def test_non_positive_interval_fails_at_start(
        self, fetcher, sink, registry, markers
    ):
        watcher = PollingWatcher(0, fetcher, sink, registry, markers)

        with pytest.raises(SchedulingError):
            watcher.start()

    def test_construction_does_no_io(self, fetcher, sink, registry, markers):
        watcher = PollingWatcher(timedelta(minutes=30), fetcher, sink, registry, markers)

        assert watcher.check_interval == 1800
        assert watcher.source_type == SourceType.STEAM_INTERNAL
        assert fetcher.calls == []
