"""Live traffic poll cycle.

:class:`LiveTraffic` wires the pieces of one display together:

    PollingClient -> decimate -> StateReconciler -> SelectionController
                                                 -> RenderSink

A one-second tick drives the countdown text and, when the poll interval
has elapsed and the client's rate gate is open, issues exactly one
snapshot request as an asyncio task. Requests never overlap: the gate stays
closed while one is outstanding. Feed errors are reported on the sink and
the cycle carries on at its normal cadence.

Example (virtual time):

    ts = SimTimeSource()
    sched = Scheduler(ts)
    sink = HeadlessSink()
    engine = LiveTraffic(client, sink, sched, settings=Settings())
    engine.start()          # first poll issued immediately
    await asyncio.sleep(0)  # let the request task finish
    sched.advance(5.0)      # tick five times; next poll issued
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional, Protocol

from skytrace.app.idle import IdleMonitor
from skytrace.core.decimate import decimate
from skytrace.core.models import Snapshot, StateVector
from skytrace.core.region import BoundingBox
from skytrace.core.scheduler import Scheduler, TimerHandle
from skytrace.core.selection import SelectionController
from skytrace.core.time import TimeSource
from skytrace.core.tracks import ReconcileResult, StateReconciler
from skytrace.ingest.opensky.client import (
    AuthFailed,
    FeedError,
    NetworkError,
    RateLimited,
    RateLimitedByServer,
)
from skytrace.render.sink import RenderSink
from skytrace.settings.schema import Settings

__all__ = ["SnapshotClient", "LiveTraffic"]

logger = logging.getLogger(__name__)

TICK_S = 1.0
HIGH_TRAFFIC_TOAST_S = 3.0

NO_DATA_TOAST = "No aircraft detected in this region."
RATE_LIMIT_TOAST = "Data temporarily unavailable (Rate Limit)."
AUTH_FAILED_TOAST = "Login Failed: Invalid Username/Password."


class SnapshotClient(Protocol):
    def can_poll(self) -> bool:
        ...

    async def fetch_snapshot(self, region: Optional[BoundingBox]) -> Snapshot:
        ...

    def set_credentials(self, username: Optional[str], password: Optional[str]) -> bool:
        ...


class LiveTraffic:
    """Poll cycle, idle handling and status reporting for one map."""

    def __init__(
        self,
        client: SnapshotClient,
        sink: RenderSink,
        scheduler: Scheduler,
        *,
        settings: Optional[Settings] = None,
        region: Optional[BoundingBox] = None,
        ts: Optional[TimeSource] = None,
    ) -> None:
        settings = settings or Settings()
        self._client = client
        self._sink = sink
        self._scheduler = scheduler
        self._ts = ts or scheduler.time_source
        self._budget = settings.display_budget
        self._poll_every = max(1, int(round(settings.poll_interval_s / TICK_S)))
        self._discard_while_idle = settings.discard_results_while_idle

        self.region = region

        self.reconciler = StateReconciler(sink, trail_max=settings.trail_max_points)
        self.selection = SelectionController(
            sink,
            scheduler,
            self._ts,
            self.reconciler.get,
            stale_after_s=settings.stale_after_s,
            on_change=self._on_selection_change,
        )
        self.reconciler.bind_selection(self.selection)
        self.idle = IdleMonitor(
            scheduler,
            timeout_s=settings.idle_timeout_s,
            on_idle=self._on_idle,
            on_active=self._on_active,
        )

        self._tick_handle: Optional[TimerHandle] = None
        self._toast_handle: Optional[TimerHandle] = None
        self._ticks_since_poll = 0
        self._tasks: set[asyncio.Task[None]] = set()

        self.cycles = 0
        self.consec_errors = 0
        self.last_error: Optional[FeedError] = None

    # Lifecycle ------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._tick_handle is not None

    def start(self) -> None:
        """Begin ticking and issue the first poll immediately."""
        if self._tick_handle is not None:
            self._tick_handle.cancel()
        self._ticks_since_poll = 0
        self.idle.activity()
        self._tick_handle = self._scheduler.call_every(TICK_S, self._tick)
        self.poll_now()

    def stop(self) -> None:
        """Stop ticking. In-flight requests are still allowed to complete."""
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        self.idle.stop()

    def reset(self) -> None:
        """Stop and tear down all markers, trails and selection."""
        self.stop()
        self.reconciler.reset()
        self._clear_toast_timer()
        self.cycles = 0
        self.consec_errors = 0
        self.last_error = None

    async def drain(self) -> None:
        """Wait for outstanding requests to finish and be applied."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # User-facing operations ----------------------------------------------
    def select(self, icao24: str) -> bool:
        return self.selection.select(icao24)

    def clear_selection(self) -> None:
        self.selection.clear_selection()

    def set_region(self, region: Optional[BoundingBox]) -> None:
        """Viewport moved; this also counts as user activity."""
        self.region = region
        self.notify_activity()

    def notify_activity(self) -> None:
        was_idle = self.idle.idle
        self.idle.activity()
        if was_idle:
            self.poll_now()

    def set_visible(self, visible: bool) -> None:
        self.idle.set_visible(visible)
        if visible:
            self.poll_now()

    def set_credentials(self, username: Optional[str], password: Optional[str]) -> bool:
        if not self._client.set_credentials(username, password):
            return False
        self.poll_now()
        return True

    # Poll cycle -----------------------------------------------------------
    def poll_now(self) -> Optional[asyncio.Task[None]]:
        """Issue one request if not idle and the rate gate is open."""
        if self.idle.idle:
            return None
        if not self._client.can_poll():
            logger.debug("Skipping poll (rate limit protection)")
            return None
        self._ticks_since_poll = 0
        self._sink.show_status("Fetching...", "active")
        task = asyncio.get_running_loop().create_task(self._poll_once())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _tick(self) -> None:
        self._ticks_since_poll += 1
        if self.idle.idle:
            self._sink.show_countdown("")
            return
        remaining = max(0, self._poll_every - self._ticks_since_poll)
        if remaining > 0:
            self._sink.show_countdown(f"({remaining}s)")
            return
        self._sink.show_countdown("(Updating...)")
        if self._client.can_poll():
            self.poll_now()

    async def _poll_once(self) -> None:
        try:
            snapshot = await self._client.fetch_snapshot(self.region)
        except RateLimited:
            logger.debug("Poll refused by local rate gate")
            return
        except RateLimitedByServer as e:
            self._report_error(e, "Rate Limited", RATE_LIMIT_TOAST)
            return
        except AuthFailed as e:
            self._report_error(e, "Auth Error", AUTH_FAILED_TOAST)
            return
        except NetworkError as e:
            self._report_error(e, "Network Error", f"Network Error ({e.detail})")
            return

        if self.consec_errors:
            logger.info("Feed recovered after %d consecutive errors", self.consec_errors)
        self.consec_errors = 0
        self.last_error = None

        if self.idle.idle and self._discard_while_idle:
            logger.info("Discarding snapshot that arrived while idle")
            return
        self._sink.show_status("Updated", "active")
        self.on_snapshot(snapshot.records)

    def _report_error(self, err: FeedError, status: str, toast: str) -> None:
        self.consec_errors += 1
        self.last_error = err
        logger.warning("Feed error: %s (%d consecutive)", err, self.consec_errors)
        if self.consec_errors in {10, 30, 60}:
            logger.error(
                "Feed still failing (%d consecutive, last=%s)",
                self.consec_errors,
                err.__class__.__name__,
            )
        self._show_toast(toast)
        self._sink.show_status(status, "error")

    # Snapshot application ------------------------------------------------
    def on_snapshot(self, records: Iterable[StateVector]) -> ReconcileResult:
        """Apply one snapshot: decimate if over budget, then reconcile."""
        records = list(records)
        total = len(records)
        if total == 0:
            self._show_toast(NO_DATA_TOAST)
        else:
            self._show_toast(None)
        self._sink.show_count(total)

        visible = decimate(records, self.selection.selected, self._budget)
        if len(visible) < total:
            self._show_toast(
                f"High Traffic: Showing {self._budget} of {total} aircraft",
                duration_s=HIGH_TRAFFIC_TOAST_S,
            )
        result = self.reconciler.reconcile(visible)
        self.cycles += 1
        logger.debug(
            "Snapshot %d: %d records, +%d ~%d -%d",
            self.cycles,
            total,
            len(result.created),
            len(result.updated),
            len(result.removed),
        )
        return result

    # Sink helpers ---------------------------------------------------------
    def _show_toast(self, text: Optional[str], duration_s: Optional[float] = None) -> None:
        self._clear_toast_timer()
        self._sink.show_toast(text)
        if text is not None and duration_s is not None:
            self._toast_handle = self._scheduler.call_later(duration_s, self._hide_toast)

    def _hide_toast(self) -> None:
        self._toast_handle = None
        self._sink.show_toast(None)

    def _clear_toast_timer(self) -> None:
        if self._toast_handle is not None:
            self._toast_handle.cancel()
            self._toast_handle = None

    def _on_idle(self, reason: str) -> None:
        if reason == "background":
            self._sink.show_status("Background (Paused)", "idle")
        else:
            self._sink.show_status("Idle (Paused)", "idle")
        self._sink.show_countdown("")

    def _on_active(self) -> None:
        self._sink.show_status("Active", "active")

    def _on_selection_change(self, previous: Optional[str], current: Optional[str]) -> None:
        if previous is not None:
            self.reconciler.restyle(previous)
        if current is not None:
            self.reconciler.restyle(current)
