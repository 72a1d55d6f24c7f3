"""StateReconciler: snapshot-to-marker reconciliation.

This module owns the authoritative mapping from aircraft identifier to
last-known state, bounded trail and marker handle. Each call to
:meth:`StateReconciler.reconcile` diffs the incoming records against the
tracked set and applies create / update / remove transitions on the sink.

Example usage:

    sink = HeadlessSink()
    reconciler = StateReconciler(sink, trail_max=50)
    result = reconciler.reconcile(snapshot.records)
    print(result.created, result.removed)

    track = reconciler.get("4ca7b4")
    if track:
        print(f"Track has {len(track.trail)} points")

Rules
-----
- Records without a usable position (missing, or outside lat [-90, 90] /
  lon [-180, 180]) are skipped entirely: not tracked and not part of the
  current set.
- A trail point is appended only when it differs from the last point; the
  trail is capped at ``trail_max`` with the oldest point evicted first.
- Any tracked identifier missing from the current set is destroyed (marker
  removed, trail discarded). If it was selected, selection is cleared.
- One pass over the records plus one cleanup pass over the prior mapping.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Deque, Iterable, Iterator, Optional

from skytrace.core.models import StateVector, TrailPoint
from skytrace.core.region import is_valid_coordinate
from skytrace.render import presentation
from skytrace.render.sink import RenderSink

if TYPE_CHECKING:
    from skytrace.core.selection import SelectionController

__all__ = ["DEFAULT_TRAIL_MAX", "TrackedAircraft", "ReconcileResult", "StateReconciler"]

logger = logging.getLogger(__name__)

DEFAULT_TRAIL_MAX = 50


@dataclass
class TrackedAircraft:
    """Tracked state for one identifier. The marker handle belongs to the sink."""

    icao24: str
    record: StateVector
    marker: Any
    trail: Deque[TrailPoint]

    def append_point(self, lat: float, lon: float) -> bool:
        """Append (lat, lon) unless it repeats the last point; return True if added."""
        point = (lat, lon)
        if self.trail and self.trail[-1] == point:
            return False
        # deque(maxlen=...) evicts from the left.
        self.trail.append(point)
        return True


@dataclass
class ReconcileResult:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    skipped: int = 0


class StateReconciler:
    """Maintains TrackedAircraft keyed by identifier and mirrors them on a sink."""

    def __init__(
        self,
        sink: RenderSink,
        *,
        trail_max: int = DEFAULT_TRAIL_MAX,
        selection: Optional["SelectionController"] = None,
    ) -> None:
        if trail_max < 1:
            raise ValueError(f"trail_max must be >= 1: {trail_max}")
        self._sink = sink
        self._trail_max = trail_max
        self._tracks: dict[str, TrackedAircraft] = {}
        self._selection = selection

    def bind_selection(self, selection: "SelectionController") -> None:
        self._selection = selection

    @property
    def selected_id(self) -> Optional[str]:
        return self._selection.selected if self._selection is not None else None

    # Reconciliation -------------------------------------------------------
    def reconcile(self, records: Iterable[StateVector]) -> ReconcileResult:
        result = ReconcileResult()
        current: set[str] = set()
        selected = self.selected_id
        touched_selected: Optional[TrackedAircraft] = None

        for rec in records:
            if rec.lat is None or rec.lon is None:
                result.skipped += 1
                continue
            if not is_valid_coordinate(rec.lat, rec.lon):
                logger.debug(
                    "Out-of-range position for %s: %s, %s", rec.icao24, rec.lat, rec.lon
                )
                result.skipped += 1
                continue
            icao = rec.icao24
            current.add(icao)
            style = presentation.marker_style(rec, selected=icao == selected)
            track = self._tracks.get(icao)
            if track is None:
                handle = self._sink.create_marker(icao, style)
                track = TrackedAircraft(
                    icao24=icao,
                    record=rec,
                    marker=handle,
                    trail=deque(maxlen=self._trail_max),
                )
                track.append_point(rec.lat, rec.lon)
                self._tracks[icao] = track
                result.created.append(icao)
            else:
                track.record = rec
                track.append_point(rec.lat, rec.lon)
                self._sink.update_marker(track.marker, style)
                result.updated.append(icao)
                if icao == selected:
                    touched_selected = track

        for icao in [k for k in self._tracks if k not in current]:
            self._destroy(icao)
            result.removed.append(icao)

        if touched_selected is not None and self._selection is not None:
            self._selection.on_track_updated(touched_selected)

        if result.skipped:
            logger.debug("Skipped %d records without usable position", result.skipped)
        return result

    def _destroy(self, icao: str) -> None:
        track = self._tracks.pop(icao)
        self._sink.remove_marker(track.marker)
        track.trail.clear()
        if self._selection is not None and self._selection.selected == icao:
            self._selection.clear_selection()

    def restyle(self, icao: str) -> None:
        """Re-apply the marker style for *icao* (e.g. after selection changes)."""
        track = self._tracks.get(icao)
        if track is None:
            return
        style = presentation.marker_style(
            track.record, selected=icao == self.selected_id
        )
        self._sink.update_marker(track.marker, style)

    def reset(self) -> None:
        """Tear down every marker and clear selection."""
        if self._selection is not None and self._selection.selected is not None:
            self._selection.clear_selection()
        for icao in list(self._tracks):
            self._destroy(icao)

    # Query helpers --------------------------------------------------------
    def get(self, icao24: str) -> Optional[TrackedAircraft]:
        return self._tracks.get(icao24)

    def list_active(self) -> list[TrackedAircraft]:
        return list(self._tracks.values())

    def __len__(self) -> int:
        return len(self._tracks)

    def __contains__(self, icao24: object) -> bool:
        return icao24 in self._tracks

    def __iter__(self) -> Iterator[TrackedAircraft]:
        return iter(list(self._tracks.values()))
