"""Tests for marker derivation and comparison."""

import pytest

from game_tracker.entities.freshness import (
    MarkerError,
    derive_marker,
    is_newer,
    newest_item,
    stored_marker,
)
from game_tracker.entities.schemas import NewsItem


def _item(raw_date: str, item_id: str = "1") -> NewsItem:
    return NewsItem(id=item_id, date=raw_date)


class TestDeriveMarker:

    @pytest.mark.parametrize(
        "raw",
        [
            "2023-11-14T22:13:20+00:00",
            "2023-11-14T22:13:20Z",
            "2023-11-14T22:13:20.000Z",
            "Tue, 14 Nov 2023 22:13:20 +0000",
            "Tue, 14 Nov 2023 23:13:20 +0100",
            "1700000000",
            "1700000000000",
        ],
    )
    def test_equivalent_formats_give_same_marker(self, raw):
        assert derive_marker(_item(raw)) == "1700000000000"

    def test_naive_iso_is_utc(self):
        assert derive_marker(_item("2023-11-14T22:13:20")) == "1700000000000"

    def test_millisecond_precision_is_kept(self):
        assert derive_marker(_item("1700000000123")) == "1700000000123"

    @pytest.mark.parametrize("raw", ["", "   ", "yesterday", "14/11/2023"])
    def test_malformed_dates_raise(self, raw):
        with pytest.raises(MarkerError):
            derive_marker(_item(raw))


class TestIsNewer:

    def test_anything_is_newer_than_missing(self):
        assert is_newer("1", None)

    def test_numeric_comparison(self):
        assert is_newer("10000000000000", "9999999999999")
        assert not is_newer("9999999999999", "10000000000000")

    def test_equal_is_not_newer(self):
        assert not is_newer("1700000000000", "1700000000000")


class TestStoredMarker:

    def test_numeric_marker_kept(self):
        assert stored_marker("1700000000000") == "1700000000000"

    def test_legacy_date_string_converted(self):
        assert stored_marker("2023-11-14T22:13:20Z") == "1700000000000"

    @pytest.mark.parametrize("raw", [None, "", "   ", "NaN", "undefined"])
    def test_unusable_values_count_as_missing(self, raw):
        assert stored_marker(raw) is None


class TestNewestItem:

    def test_picks_freshest_regardless_of_order(self):
        items = [
            _item("2023-11-14T22:13:20Z", "a"),
            _item("2023-11-15T22:13:20Z", "b"),
            _item("2023-11-13T22:13:20Z", "c"),
        ]

        item, marker = newest_item(items)

        assert item.id == "b"
        assert marker == "1700086400000"

    def test_skips_unusable_items(self):
        items = [_item("garbage", "a"), _item("1700000000", "b")]

        item, _ = newest_item(items)

        assert item.id == "b"

    def test_no_usable_item_raises(self):
        with pytest.raises(MarkerError):
            newest_item([_item("garbage")])
