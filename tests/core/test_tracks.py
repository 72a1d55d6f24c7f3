"""Tests for StateReconciler."""

from __future__ import annotations

from typing import Callable

import pytest
from hypothesis import given
from hypothesis import strategies as st

from skytrace.core.models import StateVector
from skytrace.core.scheduler import Scheduler
from skytrace.core.selection import SelectionController
from skytrace.core.time import SimTimeSource
from skytrace.core.tracks import StateReconciler
from skytrace.render.sink import HeadlessSink

MakeState = Callable[..., StateVector]


def _wire(trail_max: int = 50) -> tuple[HeadlessSink, StateReconciler, SelectionController]:
    sink = HeadlessSink()
    ts = SimTimeSource(start=0.0, wall_start=1_700_000_000.0)
    sched = Scheduler(ts)
    rec = StateReconciler(sink, trail_max=trail_max)
    sel = SelectionController(sink, sched, ts, rec.get)
    rec.bind_selection(sel)
    return sink, rec, sel


def test_create_and_update(make_state: MakeState) -> None:
    sink, rec, _ = _wire()

    r1 = rec.reconcile([make_state("abc123", lat=40.0, lon=-74.0)])
    assert r1.created == ["abc123"]
    track = rec.get("abc123")
    assert track is not None
    assert list(track.trail) == [(40.0, -74.0)]
    assert track.marker is sink.markers["abc123"]

    r2 = rec.reconcile(
        [make_state("abc123", lat=40.01, lon=-74.01, true_track=90.0)]
    )
    assert r2.updated == ["abc123"]
    assert r2.created == []
    assert rec.get("abc123") is track
    assert list(track.trail) == [(40.0, -74.0), (40.01, -74.01)]
    assert track.record.lat == 40.01
    assert sink.markers["abc123"].style.rotation_deg == 90.0
    assert sink.created == 1


def test_records_without_position_are_skipped(make_state: MakeState) -> None:
    sink, rec, _ = _wire()
    result = rec.reconcile(
        [
            make_state("nopos1", lat=None, lon=None),
            make_state("nopos2", lat=10.0, lon=None),
            make_state("ok0001", lat=1.0, lon=2.0),
        ]
    )
    assert result.skipped == 2
    assert result.created == ["ok0001"]
    assert "nopos1" not in rec
    assert "nopos2" not in rec
    assert len(sink.markers) == 1


def test_out_of_range_position_is_undisplayable(make_state: MakeState) -> None:
    sink, rec, _ = _wire()
    result = rec.reconcile(
        [
            make_state("badlat", lat=91.0, lon=0.0),
            make_state("badlon", lat=0.0, lon=-181.0),
            make_state("nanlat", lat=float("nan"), lon=0.0),
            make_state("ok0001", lat=-90.0, lon=180.0),
        ]
    )
    assert result.skipped == 3
    assert result.created == ["ok0001"]
    assert set(sink.markers) == {"ok0001"}


def test_record_losing_position_is_removed(make_state: MakeState) -> None:
    _, rec, _ = _wire()
    rec.reconcile([make_state("abc123", lat=1.0, lon=2.0)])
    result = rec.reconcile([make_state("abc123", lat=None, lon=None)])
    assert result.removed == ["abc123"]
    assert "abc123" not in rec


def test_duplicate_point_not_appended(make_state: MakeState) -> None:
    _, rec, _ = _wire()
    for _ in range(5):
        rec.reconcile([make_state("abc123", lat=40.0, lon=-74.0)])
    track = rec.get("abc123")
    assert track is not None
    assert list(track.trail) == [(40.0, -74.0)]


def test_non_adjacent_repeat_is_appended(make_state: MakeState) -> None:
    _, rec, _ = _wire()
    for lat in (1.0, 2.0, 1.0):
        rec.reconcile([make_state("abc123", lat=lat, lon=0.0)])
    track = rec.get("abc123")
    assert track is not None
    assert list(track.trail) == [(1.0, 0.0), (2.0, 0.0), (1.0, 0.0)]


def test_trail_capped_oldest_evicted(make_state: MakeState) -> None:
    _, rec, _ = _wire()
    for i in range(60):
        rec.reconcile([make_state("abc123", lat=float(i), lon=0.0)])
    track = rec.get("abc123")
    assert track is not None
    assert len(track.trail) == 50
    assert track.trail[0] == (10.0, 0.0)
    assert track.trail[-1] == (59.0, 0.0)


def test_absent_identifier_removed_once(make_state: MakeState) -> None:
    sink, rec, _ = _wire()
    rec.reconcile([make_state("aaa111"), make_state("bbb222")])
    handle = rec.get("bbb222").marker  # type: ignore[union-attr]

    r = rec.reconcile([make_state("aaa111")])
    assert r.removed == ["bbb222"]
    assert handle.removed is True
    assert "bbb222" not in sink.markers

    r = rec.reconcile([make_state("aaa111")])
    assert r.removed == []
    assert sink.removed == 1


def test_reappearing_identifier_starts_fresh_trail(make_state: MakeState) -> None:
    _, rec, _ = _wire()
    rec.reconcile([make_state("abc123", lat=1.0, lon=1.0)])
    rec.reconcile([make_state("abc123", lat=2.0, lon=2.0)])
    rec.reconcile([])
    rec.reconcile([make_state("abc123", lat=3.0, lon=3.0)])
    track = rec.get("abc123")
    assert track is not None
    assert list(track.trail) == [(3.0, 3.0)]


def test_removing_selected_clears_selection(make_state: MakeState) -> None:
    sink, rec, sel = _wire()
    rec.reconcile([make_state("abc123", lat=1.0, lon=1.0)])
    rec.reconcile([make_state("abc123", lat=2.0, lon=2.0)])
    assert sel.select("abc123")
    assert sink.trail == [(1.0, 1.0), (2.0, 2.0)]
    assert sink.detail is not None

    rec.reconcile([make_state("other1")])
    assert sel.selected is None
    assert sink.detail is None
    assert sink.trail is None
    assert not sel.live


def test_selected_update_refreshes_detail_and_trail(make_state: MakeState) -> None:
    sink, rec, sel = _wire()
    rec.reconcile([make_state("abc123", lat=1.0, lon=1.0, callsign="BAW1")])
    assert sel.select("abc123")
    # A single point is not drawn.
    assert sink.trail is None

    rec.reconcile([make_state("abc123", lat=2.0, lon=2.0, callsign="BAW1")])
    assert sink.trail == [(1.0, 1.0), (2.0, 2.0)]
    assert sink.detail is not None
    assert sink.detail.position == "2.0000, 2.0000"
    assert sink.markers["abc123"].style.selected is True


def test_reset_tears_everything_down(make_state: MakeState) -> None:
    sink, rec, sel = _wire()
    rec.reconcile([make_state("aaa111"), make_state("bbb222")])
    sel.select("aaa111")
    rec.reset()
    assert len(rec) == 0
    assert sink.markers == {}
    assert sel.selected is None


def test_invalid_trail_max() -> None:
    with pytest.raises(ValueError):
        StateReconciler(HeadlessSink(), trail_max=0)


_points = st.lists(
    st.tuples(
        st.sampled_from([0.0, 0.5, 1.0]),
        st.sampled_from([10.0, 10.5]),
    ),
    min_size=1,
    max_size=120,
)


@given(_points)
def test_trail_invariants(points: list[tuple[float, float]]) -> None:
    _, rec, _ = _wire(trail_max=50)
    for lat, lon in points:
        rec.reconcile([StateVector(icao24="abc123", lat=lat, lon=lon)])
    track = rec.get("abc123")
    assert track is not None
    trail = list(track.trail)
    assert 1 <= len(trail) <= 50
    assert trail[-1] == points[-1]
    assert all(a != b for a, b in zip(trail, trail[1:]))
