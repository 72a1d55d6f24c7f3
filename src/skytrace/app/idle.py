"""User-inactivity tracking for the poll cycle.

Any interaction (pointer, key, map move) re-arms a timeout; when it fires
the monitor goes idle and polling is suspended. Losing visibility forces
idle at once; regaining it counts as activity.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from skytrace.core.scheduler import Scheduler, TimerHandle

__all__ = ["IdleMonitor"]

logger = logging.getLogger(__name__)

IdleCallback = Callable[[str], None]


class IdleMonitor:
    """Tracks idle state; ``timeout_s=None`` disables the inactivity timeout."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        timeout_s: Optional[float] = 60.0,
        on_idle: Optional[IdleCallback] = None,
        on_active: Optional[Callable[[], None]] = None,
    ) -> None:
        self._scheduler = scheduler
        self._timeout_s = timeout_s
        self._on_idle = on_idle
        self._on_active = on_active
        self._timer: Optional[TimerHandle] = None
        self._idle = False
        self._visible = True

    @property
    def idle(self) -> bool:
        return self._idle

    @property
    def visible(self) -> bool:
        return self._visible

    def activity(self) -> None:
        """Record user interaction: leave idle and restart the timeout."""
        self._idle = False
        self._cancel_timer()
        if self._timeout_s is not None:
            self._timer = self._scheduler.call_later(self._timeout_s, self._expire)
        if self._on_active is not None:
            self._on_active()

    def set_visible(self, visible: bool) -> None:
        self._visible = visible
        if visible:
            self.activity()
        else:
            self._go_idle("background")

    def stop(self) -> None:
        self._cancel_timer()

    def _expire(self) -> None:
        self._timer = None
        self._go_idle("inactive")

    def _go_idle(self, reason: str) -> None:
        self._cancel_timer()
        self._idle = True
        logger.info("Idle (%s); polling paused", reason)
        if self._on_idle is not None:
            self._on_idle(reason)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
