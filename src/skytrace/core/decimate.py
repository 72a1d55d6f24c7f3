"""Display-budget decimation of oversized snapshots.

When a snapshot carries more aircraft than the map can draw, the fastest
movers are kept (a cheap proxy for "interesting" traffic) and the
followed aircraft is pinned to the front so it never drops off the map.
Ties keep feed order.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from skytrace.core.models import StateVector

__all__ = ["DEFAULT_BUDGET", "decimate"]

logger = logging.getLogger(__name__)

DEFAULT_BUDGET = 750


def _velocity(rec: StateVector) -> float:
    return rec.velocity if rec.velocity is not None else 0.0


def decimate(
    records: Sequence[StateVector],
    selected_id: Optional[str] = None,
    budget: int = DEFAULT_BUDGET,
) -> list[StateVector]:
    """Return at most *budget* records, fastest first, selection pinned.

    Inputs within budget are returned unchanged (as a list, in feed order).
    """
    if budget < 0:
        raise ValueError(f"budget must be non-negative: {budget}")
    if len(records) <= budget:
        return list(records)

    logger.warning("High traffic (%d aircraft); capping to %d", len(records), budget)

    # sorted() is stable with reverse=True, so equal velocities keep feed order.
    ranked = sorted(records, key=_velocity, reverse=True)

    if selected_id is not None:
        pinned = next((r for r in records if r.icao24 == selected_id), None)
        if pinned is not None:
            ranked = [pinned] + [r for r in ranked if r.icao24 != selected_id]

    return ranked[:budget]
