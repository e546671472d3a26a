"""Tests for totals, deltas, per-sketch increases and summaries."""
from datetime import datetime, timezone

from analyzer import (
    badge,
    last_increase,
    latest_delta,
    sketch_increases,
    summarize,
    totals_per_snapshot,
)
from series import build_series
from tests.conftest import make_snapshot

T1 = "2026-02-23T21:00:00.000+01:00"
T2 = "2026-02-24T21:00:00.000+01:00"
T3 = "2026-02-25T21:00:00.000+01:00"


def test_latest_delta_increase():
    assert latest_delta([100, 100, 150]) == 50


def test_latest_delta_flat_with_lookback():
    totals = [100, 150, 150]
    assert latest_delta(totals) == 0
    lookback = last_increase(totals)
    assert (lookback.index, lookback.delta) == (1, 50)


def test_latest_delta_negative():
    assert latest_delta([150, 120]) == -30


def test_latest_delta_needs_two_values():
    assert latest_delta([]) is None
    assert latest_delta([100]) is None


def test_last_increase_none_observed():
    assert last_increase([100, 100, 90]) is None
    assert last_increase([100]) is None
    assert last_increase([]) is None


def test_last_increase_finds_most_recent():
    lookback = last_increase([10, 20, 20, 35, 30, 30])
    assert (lookback.index, lookback.delta) == (3, 15)


def test_sketch_increases_missing_previous_counts_from_zero():
    history = [
        make_snapshot(T1, {1: 10, 2: 5}, titles={1: "A", 2: "B"}),
        make_snapshot(T2, {1: 12, 2: 5, 3: 3}, titles={1: "A", 2: "B", 3: "C"}),
    ]
    increases = sketch_increases(build_series(history).series)
    assert [(item.title, item.delta) for item in increases] == [("C", 3), ("A", 2)]


def test_sketch_increases_ties_keep_series_order():
    history = [
        make_snapshot(T1, {1: 10, 2: 50, 3: 1}),
        make_snapshot(T2, {1: 12, 2: 52, 3: 9}),
    ]
    increases = sketch_increases(build_series(history).series)
    assert [(item.id, item.delta) for item in increases] == [(3, 8), (2, 2), (1, 2)]


def test_sketch_increases_single_snapshot():
    assert sketch_increases(build_series([make_snapshot(T1, {1: 10})]).series) == []


def test_totals_include_every_retained_sketch():
    history = [
        make_snapshot(T1, {1: 10, 2: 0}),
        make_snapshot(T2, {1: 12, 3: 4}),
        make_snapshot(T3, {3: 6, 2: 0}),
    ]
    series_set = build_series(history)
    assert totals_per_snapshot(series_set.series, series_set.snapshot_count) == [10, 16, 6]


def test_totals_tolerate_malformed_snapshots():
    history = [{"fetched_at": T1}, {"fetched_at": T2, "sketches": [{"id": 1, "views": "7"}, "x"]}]
    series_set = build_series(history)
    assert totals_per_snapshot(series_set.series, series_set.snapshot_count) == [0, 7]


# --- summarize ---

def test_summary_empty():
    summary = summarize([])
    assert summary.status == "empty"
    assert summary.latest_total == 0
    assert summary.latest_delta is None
    assert summary.text == "New views: waiting for captures"


def test_summary_single_capture_waits():
    summary = summarize([make_snapshot(T1, {1: 10})])
    assert summary.status == "waiting"
    assert summary.latest_delta is None
    assert summary.latest_total == 10
    assert summary.text == "New views: waiting for next capture (first capture Feb 23, 2026, 21:00)"


def test_summary_increase():
    history = [
        make_snapshot(T1, {1: 60, 2: 40}, titles={1: "Flow field", 2: "Particles"}),
        make_snapshot(T2, {1: 90, 2: 60}, titles={1: "Flow field", 2: "Particles"}),
    ]
    summary = summarize(history)
    assert summary.status == "increased"
    assert summary.latest_total == 150
    assert summary.latest_delta == 50
    assert summary.text == "New views: +50 since Feb 23, 2026, 21:00 (captured Feb 24, 2026, 21:00)"
    assert summary.breakdown == summary.text + " · sketches: Flow field (+30), Particles (+20)"
    assert summary.last_increase.index == 1


def test_summary_breakdown_limit():
    before = {i: 0 for i in range(1, 9)}
    after = {i: i for i in range(1, 9)}
    summary = summarize([make_snapshot(T1, before), make_snapshot(T2, after)], limit=3)
    assert [item.delta for item in summary.increases] == [8, 7, 6]
    assert summary.remaining == 5
    assert summary.breakdown.endswith(", +5 more")


def test_summary_breakdown_truncates_titles():
    history = [
        make_snapshot(T1, {1: 1}, titles={1: "A very long sketch title indeed"}),
        make_snapshot(T2, {1: 5}, titles={1: "A very long sketch title indeed"}),
    ]
    summary = summarize(history, max_title=10)
    assert summary.breakdown.endswith("sketches: A very lo… (+4)")


def test_summary_flat_none_observed():
    history = [make_snapshot(T1, {1: 10}), make_snapshot(T2, {1: 10})]
    summary = summarize(history)
    assert summary.status == "flat"
    assert summary.latest_delta == 0
    assert summary.last_increase is None
    assert summary.text == "New views: none observed yet"


def test_summary_flat_with_lookback():
    history = [
        make_snapshot(T1, {1: 100}),
        make_snapshot(T2, {1: 150}),
        make_snapshot(T3, {1: 150}),
    ]
    now = datetime(2026, 2, 26, 20, 0, tzinfo=timezone.utc)
    summary = summarize(history, now=now)
    assert summary.status == "flat"
    assert summary.last_increase.index == 1
    assert summary.last_increase.delta == 50
    assert summary.last_increase.at == T2
    assert summary.increases == []
    assert summary.text == (
        "New views: none since Feb 24, 2026, 21:00 (+50) (2d ago) · latest capture Feb 25, 2026, 21:00"
    )


def test_summary_decrease_uses_lookback():
    history = [make_snapshot(T1, {1: 100}), make_snapshot(T2, {1: 130}), make_snapshot(T3, {1: 120})]
    summary = summarize(history, now=datetime(2026, 2, 26, 20, 0, tzinfo=timezone.utc))
    assert summary.latest_delta == -10
    assert summary.last_increase.delta == 30


# --- badge ---

def test_badge_uses_latest_capture():
    history = [make_snapshot(T2, {1: 1200, 2: 300}), make_snapshot(T1, {1: 5})]
    assert badge(history) == {"text": "2K", "total": 1500, "title": "1,500 total views captured"}


def test_badge_empty():
    assert badge([])["text"] == "0"


def test_badge_matches_summary_total_with_duplicate_ids():
    history = [
        {"fetched_at": T1, "sketches": [{"id": 1, "views": 10}]},
        {"fetched_at": T2, "sketches": [{"id": 1, "views": 12}, {"id": 1, "views": 15}, {"id": 2, "views": 3}]},
    ]
    assert badge(history)["total"] == summarize(history).latest_total
