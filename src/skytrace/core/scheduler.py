"""Single-threaded timer scheduler driven by a TimeSource.

All periodic work in the application (poll tick, idle timeout, live
"seen ... ago" ticker) is registered here instead of on ad-hoc asyncio
tasks. Callbacks run synchronously, one at a time, in due order.

Real-time usage:

    sched = Scheduler(RealTimeSource())
    handle = sched.call_every(1.0, tick)
    task = asyncio.create_task(sched.run())
    ...
    handle.cancel()
    sched.stop()
    await task

Virtual time (tests):

    ts = SimTimeSource()
    sched = Scheduler(ts)
    sched.call_later(5.0, fire)
    sched.advance(5.0)  # fire() has run, ts.monotonic() == 5.0

Notes
-----
- A callback that raises is logged and does not stop the scheduler; a
  periodic timer keeps its cadence.
- Cancelled timers are dropped lazily when they reach the head of the heap.
"""

from __future__ import annotations

import heapq
import logging
from typing import Callable

from skytrace.core.time import SimTimeSource, TimeSource

__all__ = ["Scheduler", "TimerHandle"]

logger = logging.getLogger(__name__)

# Upper bound on a single real-time sleep so timers registered while the
# run loop is sleeping are noticed promptly.
_MAX_IDLE_SLEEP_S = 0.25


class TimerHandle:
    """Handle for a scheduled callback; ``cancel()`` is idempotent."""

    __slots__ = ("due", "interval", "callback", "cancelled")

    def __init__(
        self, due: float, callback: Callable[[], None], interval: float | None
    ) -> None:
        self.due = due
        self.interval = interval
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def periodic(self) -> bool:
        return self.interval is not None

    def __repr__(self) -> str:  # pragma: no cover
        state = "cancelled" if self.cancelled else f"due={self.due:.3f}"
        return f"TimerHandle({state}, interval={self.interval})"


class Scheduler:
    """Cooperative timer wheel over a :class:`TimeSource`."""

    def __init__(self, ts: TimeSource) -> None:
        self._ts = ts
        self._heap: list[tuple[float, int, TimerHandle]] = []
        self._seq = 0
        self._running = False
        self._stopped = False

    @property
    def time_source(self) -> TimeSource:
        return self._ts

    # Registration ---------------------------------------------------------
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        """Run *callback* once, *delay_s* seconds from now."""
        if delay_s < 0:
            raise ValueError(f"delay must be non-negative: {delay_s}")
        handle = TimerHandle(self._ts.monotonic() + delay_s, callback, None)
        self._push(handle)
        return handle

    def call_every(
        self,
        interval_s: float,
        callback: Callable[[], None],
        *,
        immediate: bool = False,
    ) -> TimerHandle:
        """Run *callback* every *interval_s* seconds until cancelled.

        With ``immediate=True`` the callback also runs synchronously now.
        """
        if interval_s <= 0:
            raise ValueError(f"interval must be positive: {interval_s}")
        handle = TimerHandle(self._ts.monotonic() + interval_s, callback, interval_s)
        if immediate:
            self._invoke(handle)
        if not handle.cancelled:
            self._push(handle)
        return handle

    def _push(self, handle: TimerHandle) -> None:
        self._seq += 1
        heapq.heappush(self._heap, (handle.due, self._seq, handle))

    # Dispatch -------------------------------------------------------------
    def next_due(self) -> float | None:
        """Return the monotonic due time of the next live timer, if any."""
        while self._heap and self._heap[0][2].cancelled:
            heapq.heappop(self._heap)
        if not self._heap:
            return None
        return self._heap[0][0]

    def pending(self) -> int:
        return sum(1 for _, _, h in self._heap if not h.cancelled)

    def run_due(self) -> int:
        """Fire every timer due at the current time; return how many fired."""
        fired = 0
        now = self._ts.monotonic()
        while True:
            due = self.next_due()
            if due is None or due > now:
                break
            _, _, handle = heapq.heappop(self._heap)
            self._invoke(handle)
            fired += 1
            if handle.interval is not None and not handle.cancelled:
                handle.due = due + handle.interval
                self._push(handle)
        return fired

    def _invoke(self, handle: TimerHandle) -> None:
        try:
            handle.callback()
        except Exception:
            logger.exception("Scheduled callback %r failed", handle.callback)

    def advance(self, dt: float) -> int:
        """Step a simulated clock forward by *dt*, firing timers in order.

        The clock is moved to each timer's due time before it fires, so
        callbacks observe the time they were scheduled for.
        """
        if not isinstance(self._ts, SimTimeSource):
            raise TypeError("advance() requires a SimTimeSource")
        if dt < 0:
            raise ValueError(f"Cannot advance time backwards: dt={dt}")
        target = self._ts.monotonic() + dt
        fired = 0
        while True:
            due = self.next_due()
            if due is None or due > target:
                break
            if due > self._ts.monotonic():
                self._ts.set_time(due)
            fired += self.run_due()
        self._ts.set_time(target)
        return fired

    # Real-time loop -------------------------------------------------------
    async def run(self) -> None:
        """Dispatch timers until :meth:`stop` is called."""
        if self._running:
            return
        self._running = True
        self._stopped = False
        try:
            while not self._stopped:
                self.run_due()
                due = self.next_due()
                now = self._ts.monotonic()
                delay = _MAX_IDLE_SLEEP_S if due is None else max(0.0, due - now)
                await self._ts.sleep(min(delay, _MAX_IDLE_SLEEP_S))
        finally:
            self._running = False

    def stop(self) -> None:
        self._stopped = True
