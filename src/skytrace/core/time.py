"""Time abstraction for deterministic and real-time clock sources.

This module provides a TimeSource protocol that can be implemented by either
real-time or simulated time sources. Everything that measures intervals
(rate gate, idle timer, "seen ... ago" ticker) reads time through it so
tests can drive the whole poll cycle on virtual time.

Usage examples:

Real-time usage:
    ts = RealTimeSource()
    start = ts.monotonic()
    await ts.sleep(1.0)
    elapsed = ts.monotonic() - start  # ~1.0 seconds

Simulated time usage:
    ts = SimTimeSource(start=0.0, wall_start=1_700_000_000.0)
    ts.advance(5.0)
    assert ts.monotonic() == 5.0
    assert ts.wall_time() == 1_700_000_005.0
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol

__all__ = [
    "TimeSource",
    "RealTimeSource",
    "SimTimeSource",
]


class TimeSource(Protocol):
    """
    Protocol for time sources supporting monotonic time, wall time, and
    async sleep.
    """

    def monotonic(self) -> float:
        """Return monotonic time in seconds (suitable for measuring durations)."""
        ...

    def wall_time(self) -> float:
        """Return wall-clock time as seconds since Unix epoch."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Sleep for the specified number of seconds."""
        ...


class RealTimeSource:
    """Real-time implementation using system clocks and asyncio.sleep."""

    def monotonic(self) -> float:
        """Return monotonic time from time.monotonic()."""
        return time.monotonic()

    def wall_time(self) -> float:
        """Return wall time from time.time()."""
        return time.time()

    async def sleep(self, seconds: float) -> None:
        """Sleep using asyncio.sleep()."""
        await asyncio.sleep(seconds)


class SimTimeSource:
    """Deterministic simulated clock.

    Features:
    - Starts at configurable monotonic time (default 0.0)
    - Wall time is ``wall_start + monotonic``; ``wall_start`` defaults to the
      real wall time at creation so "seconds since contact" stays sensible
    - advance(dt) / set_time(t) move time forward only
    - sleep(sec) fast-forwards the clock instead of waiting, then yields
      once to the event loop

    Example:
        ts = SimTimeSource(start=100.0, wall_start=0.0)
        ts.advance(1.5)
        assert ts.monotonic() == 101.5
        assert ts.wall_time() == 101.5
    """

    def __init__(self, *, start: float = 0.0, wall_start: float | None = None) -> None:
        """Initialize simulated time source.

        Args:
            start: Starting monotonic time value
            wall_start: Wall-clock origin; real time at creation when None
        """
        self._monotonic_time: float = float(start)
        self._wall_origin: float = (
            float(wall_start) if wall_start is not None else time.time()
        )

    def monotonic(self) -> float:
        """Return current simulated monotonic time."""
        return self._monotonic_time

    def wall_time(self) -> float:
        """Return wall time (origin + simulated elapsed)."""
        return self._wall_origin + self._monotonic_time

    def set_time(self, t: float) -> None:
        """Set absolute simulated time (forward only).

        Raises:
            ValueError: If t < current monotonic time
        """
        if t < self._monotonic_time:
            raise ValueError(f"Cannot set time backwards: {t} < {self._monotonic_time}")
        self._monotonic_time = float(t)

    def advance(self, dt: float) -> None:
        """Advance simulated time by delta.

        Raises:
            ValueError: If dt < 0
        """
        if dt < 0:
            raise ValueError(f"Cannot advance time backwards: dt={dt}")
        self._monotonic_time += dt

    async def sleep(self, seconds: float) -> None:
        """Fast-forward by *seconds* and let other tasks run.

        Raises:
            ValueError: If seconds < 0
        """
        if seconds < 0:
            raise ValueError(f"Sleep duration must be non-negative: {seconds}")
        self.advance(seconds)
        await asyncio.sleep(0)
