"""Single-aircraft follow mode.

At most one identifier is selected. While something is selected the
controller keeps the detail view and trail overlay in step with every
reconciliation, and a one-second ticker refreshes the "seen ... ago" text
from the cached record (no I/O).
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from skytrace.core.scheduler import Scheduler, TimerHandle
from skytrace.core.time import TimeSource
from skytrace.core.tracks import TrackedAircraft
from skytrace.render import presentation
from skytrace.render.sink import RenderSink

__all__ = ["SelectionController"]

logger = logging.getLogger(__name__)

TrackLookup = Callable[[str], Optional[TrackedAircraft]]


class SelectionController:
    def __init__(
        self,
        sink: RenderSink,
        scheduler: Scheduler,
        ts: TimeSource,
        lookup: TrackLookup,
        *,
        stale_after_s: float = 300.0,
        tick_s: float = 1.0,
        on_change: Optional[Callable[[Optional[str], Optional[str]], None]] = None,
    ) -> None:
        self._sink = sink
        self._scheduler = scheduler
        self._ts = ts
        self._lookup = lookup
        self._stale_after_s = stale_after_s
        self._tick_s = tick_s
        self._on_change = on_change

        self._selected: Optional[str] = None
        self._ticker: Optional[TimerHandle] = None
        self._trail_drawn = False

    @property
    def selected(self) -> Optional[str]:
        return self._selected

    @property
    def live(self) -> bool:
        """True while the seen-ago ticker is running."""
        return self._ticker is not None

    def select(self, icao24: str) -> bool:
        """Follow *icao24*. Unknown identifiers are ignored (returns False)."""
        track = self._lookup(icao24)
        if track is None:
            logger.debug("Ignoring selection of untracked %s", icao24)
            return False
        previous = self._selected
        if previous is not None and previous != icao24:
            self._clear_trail()
        self._selected = icao24
        self._refresh(track)
        self._start_ticker()
        if previous != icao24:
            logger.info("Following %s", icao24)
            self._notify(previous, icao24)
        return True

    def clear_selection(self) -> None:
        previous = self._selected
        self._stop_ticker()
        self._clear_trail()
        if previous is not None:
            self._sink.hide_detail()
        self._selected = None
        if previous is not None:
            logger.info("Stopped following %s", previous)
            self._notify(previous, None)

    def on_track_updated(self, track: TrackedAircraft) -> None:
        """Reconciliation hook for the selected aircraft."""
        if track.icao24 != self._selected:
            return
        self._refresh(track)

    # Internals ------------------------------------------------------------
    def _refresh(self, track: TrackedAircraft) -> None:
        view = presentation.detail_view(
            track.record, self._ts.wall_time(), stale_after_s=self._stale_after_s
        )
        self._sink.show_detail(view)
        if len(track.trail) >= 2:
            self._sink.draw_trail(list(track.trail))
            self._trail_drawn = True

    def _clear_trail(self) -> None:
        if self._trail_drawn:
            self._sink.clear_trail()
            self._trail_drawn = False

    def _start_ticker(self) -> None:
        self._stop_ticker()
        self._ticker = self._scheduler.call_every(self._tick_s, self._tick)

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def _tick(self) -> None:
        if self._selected is None:
            return
        track = self._lookup(self._selected)
        if track is None or track.record.last_contact is None:
            return
        text, stale = presentation.seen_since(
            track.record.last_contact, self._ts.wall_time(), self._stale_after_s
        )
        self._sink.update_seen(text, stale)

    def _notify(self, previous: Optional[str], current: Optional[str]) -> None:
        if self._on_change is not None:
            self._on_change(previous, current)
