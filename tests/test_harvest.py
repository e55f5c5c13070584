"""Tests for the bootstrap and incremental page walks."""
from __future__ import annotations

import math

import pytest

from cvwatch_harvest import (
    STOP_MAX_PAGES,
    STOP_NO_MOVEMENT,
    STOP_NO_NEW,
    STOP_OLDER_MONTH,
    bootstrap_harvest,
    incremental_harvest,
)
from cvwatch_normalize import normalize_rows
from fakes import FakeDocument, make_table, paged, row

FAST = {"table_timeout_s": 1, "settle_timeout_s": 1}


def _rows(prefix: str, n: int, start: int = 0):
    # newest first within the block
    return [row(f"{prefix} {23 - (i % 24):02d}:{(start + i) % 60:02d}", ad_id=f"X{start + i}") for i in range(n)]


class TestBootstrap:
    def test_stops_after_first_all_older_page(self, header_map, prices):
        pages = [
            [make_table(_rows("2024-06-20", 3, 0))],
            [make_table(_rows("2024-06-10", 3, 10))],
            [make_table(_rows("2024-05-30", 3, 20))],
            [make_table(_rows("2024-05-20", 3, 30))],
        ]
        doc = FakeDocument(pages)
        result = bootstrap_harvest(doc, header_map, prices, "2024-06", max_pages=50, **FAST)
        assert result.stop_reason == STOP_OLDER_MONTH
        assert result.pages_walked == 3
        assert doc.index == 2
        assert len(result.events) == 6
        assert {e.month_key for e in result.events} == {"2024-06"}
        # the older page was read, so its rows are observed even though not collected
        assert len(result.observed) == 9
        assert {e.fingerprint for e in result.events} < set(result.observed)

    def test_mixed_boundary_page_keeps_walking(self, header_map, prices):
        pages = [
            [make_table(_rows("2024-06-01", 2, 0) + _rows("2024-05-31", 2, 10))],
            [make_table(_rows("2024-05-30", 2, 20))],
        ]
        result = bootstrap_harvest(FakeDocument(pages), header_map, prices, "2024-06", **FAST)
        assert result.pages_walked == 2
        assert len(result.events) == 2

    def test_stops_when_pager_cannot_move(self, header_map, prices):
        pages = [[make_table(_rows("2024-06-20", 3, 0))], [make_table(_rows("2024-06-10", 3, 10))]]
        result = bootstrap_harvest(FakeDocument(pages), header_map, prices, "2024-06", **FAST)
        assert result.stop_reason == STOP_NO_MOVEMENT
        assert len(result.events) == 6

    def test_max_pages_bound(self, header_map, prices):
        pages = [[make_table(_rows("2024-06-20", 2, i * 2))] for i in range(5)]
        doc = FakeDocument(pages)
        result = bootstrap_harvest(doc, header_map, prices, "2024-06", max_pages=2, **FAST)
        assert result.stop_reason == STOP_MAX_PAGES
        assert result.pages_walked == 2
        assert len(doc.clicks) == 1

    def test_duplicates_kept_first(self, header_map, prices):
        dup = row("2024-06-05 10:00", status="承認待ち")
        pages = [[make_table([dup, dup])], [make_table([dict(dup, status="承認")])]]
        result = bootstrap_harvest(FakeDocument(pages), header_map, prices, "2024-06", **FAST)
        assert len(result.events) == 1
        assert result.events[0].status == "承認待ち"


class TestIncremental:
    def test_rerun_against_unchanged_table_finds_nothing(self, header_map, prices):
        rows = _rows("2024-06-20", 12)
        first = incremental_harvest(FakeDocument(paged(rows, 5)), header_map, prices, set(), **FAST)
        assert len(first.events) == 12
        seen = {e.fingerprint for e in first.events}

        second = incremental_harvest(FakeDocument(paged(rows, 5)), header_map, prices, seen, **FAST)
        assert second.events == []
        assert second.stop_reason == STOP_NO_NEW
        assert second.pages_walked == 1

    @pytest.mark.parametrize("n_new", [1, 5, 6, 23])
    def test_burst_across_pages_returned_once(self, header_map, prices, n_new):
        page_size = 5
        old = _rows("2024-06-01", 15, start=100)
        new = _rows("2024-06-20", n_new, start=0)
        seen = {e.fingerprint for e in normalize_rows(old, prices)}

        max_pages = math.ceil(n_new / page_size) + 1
        doc = FakeDocument(paged(new + old, page_size))
        result = incremental_harvest(doc, header_map, prices, seen, max_pages=max_pages, **FAST)

        assert [e.ad_id for e in result.events] == [r["ad_id"] for r in new]
        assert len({e.fingerprint for e in result.events}) == n_new

    def test_stops_on_first_page_without_new_rows(self, header_map, prices):
        new = _rows("2024-06-20", 5)
        old = _rows("2024-06-01", 10, start=100)
        seen = {e.fingerprint for e in normalize_rows(old, prices)}
        doc = FakeDocument(paged(new + old, 5))
        result = incremental_harvest(doc, header_map, prices, seen, **FAST)
        assert result.stop_reason == STOP_NO_NEW
        assert result.pages_walked == 2
        assert doc.index == 1

    def test_max_pages_bound(self, header_map, prices):
        doc = FakeDocument(paged(_rows("2024-06-20", 30), 5))
        result = incremental_harvest(doc, header_map, prices, set(), max_pages=3, **FAST)
        assert result.stop_reason == STOP_MAX_PAGES
        assert len(result.events) == 15

    def test_stuck_pager_stops_walk(self, header_map, prices):
        doc = FakeDocument(paged(_rows("2024-06-20", 10), 5), stuck=True)
        result = incremental_harvest(doc, header_map, prices, set(), **FAST)
        assert result.stop_reason == STOP_NO_MOVEMENT
        assert len(result.events) == 5

    def test_driver_errors_propagate(self, header_map, prices):
        class Broken(FakeDocument):
            def query_tables(self):
                raise RuntimeError("page crashed")

        with pytest.raises(RuntimeError):
            incremental_harvest(Broken([[]]), header_map, prices, set(), **FAST)
