"""Rendering sink boundary.

The map widget, side panel and status bar live outside this package. The
core talks to them only through :class:`RenderSink`. :class:`HeadlessSink`
keeps everything in memory, which is what the CLI and the tests use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

from skytrace.core.models import TrailPoint
from skytrace.render.presentation import DetailView, MarkerStyle

__all__ = ["RenderSink", "HeadlessMarker", "HeadlessSink"]

logger = logging.getLogger(__name__)


class RenderSink(Protocol):
    """Operations the core performs on the visual layer."""

    def create_marker(self, icao24: str, style: MarkerStyle) -> Any:
        """Create a marker and return an opaque handle for it."""
        ...

    def update_marker(self, handle: Any, style: MarkerStyle) -> None:
        ...

    def remove_marker(self, handle: Any) -> None:
        ...

    def draw_trail(self, points: Sequence[TrailPoint]) -> None:
        """Create or replace the selected aircraft's trail overlay."""
        ...

    def clear_trail(self) -> None:
        ...

    def show_detail(self, view: DetailView) -> None:
        ...

    def update_seen(self, text: str, stale: bool) -> None:
        ...

    def hide_detail(self) -> None:
        ...

    def show_status(self, text: str, kind: str) -> None:
        ...

    def show_toast(self, text: Optional[str]) -> None:
        """Show a transient message; None hides it."""
        ...

    def show_countdown(self, text: str) -> None:
        ...

    def show_count(self, count: int) -> None:
        ...


@dataclass
class HeadlessMarker:
    icao24: str
    style: MarkerStyle
    removed: bool = False


@dataclass
class HeadlessSink:
    """In-memory sink recording the latest visual state."""

    markers: dict[str, HeadlessMarker] = field(default_factory=dict)
    trail: Optional[list[TrailPoint]] = None
    detail: Optional[DetailView] = None
    seen: Optional[tuple[str, bool]] = None
    status: tuple[str, str] = ("", "")
    toast: Optional[str] = None
    countdown: str = ""
    count: int = 0
    created: int = 0
    removed: int = 0

    def create_marker(self, icao24: str, style: MarkerStyle) -> HeadlessMarker:
        marker = HeadlessMarker(icao24=icao24, style=style)
        self.markers[icao24] = marker
        self.created += 1
        return marker

    def update_marker(self, handle: HeadlessMarker, style: MarkerStyle) -> None:
        handle.style = style

    def remove_marker(self, handle: HeadlessMarker) -> None:
        handle.removed = True
        if self.markers.get(handle.icao24) is handle:
            del self.markers[handle.icao24]
        self.removed += 1

    def draw_trail(self, points: Sequence[TrailPoint]) -> None:
        self.trail = list(points)

    def clear_trail(self) -> None:
        self.trail = None

    def show_detail(self, view: DetailView) -> None:
        self.detail = view
        self.seen = (view.seen, view.stale)

    def update_seen(self, text: str, stale: bool) -> None:
        self.seen = (text, stale)

    def hide_detail(self) -> None:
        self.detail = None
        self.seen = None

    def show_status(self, text: str, kind: str) -> None:
        if (text, kind) != self.status:
            logger.info("status: %s [%s]", text, kind)
        self.status = (text, kind)

    def show_toast(self, text: Optional[str]) -> None:
        if text and text != self.toast:
            logger.info("toast: %s", text)
        self.toast = text

    def show_countdown(self, text: str) -> None:
        self.countdown = text

    def show_count(self, count: int) -> None:
        self.count = count
