"""Decode OpenSky-style ``/states/all`` payloads into :class:`StateVector`.

Each entry of ``states`` is a positional array:

    0 icao24, 1 callsign, 2 origin_country, 3 time_position,
    4 last_contact, 5 longitude, 6 latitude, 7 baro_altitude,
    8 on_ground, 9 velocity, 10 true_track, 11 vertical_rate,
    12 sensors, 13 geo_altitude, 14 squawk, 15 spi, 16 position_source

Rows that cannot be decoded are dropped with a debug log; a row without a
position is kept (the reconciler decides what to do with it).
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from skytrace.core.models import Snapshot, StateVector

__all__ = ["parse_state_row", "parse_states", "parse_payload"]

logger = logging.getLogger(__name__)

_MIN_ROW_LEN = 12


def _coerce_float(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def _coerce_str(v: Any) -> Optional[str]:
    if isinstance(v, str):
        return v
    return None


def _at(row: Sequence[Any], idx: int) -> Any:
    return row[idx] if idx < len(row) else None


def parse_state_row(row: Any) -> Optional[StateVector]:
    """Decode one positional state array, or return None if unusable."""
    if not isinstance(row, (list, tuple)):
        return None
    # Trailing columns (sensors onward) may be absent on older feeds.
    if len(row) < _MIN_ROW_LEN:
        return None
    icao = _at(row, 0)
    if not isinstance(icao, str) or not icao.strip():
        return None
    try:
        return StateVector(
            icao24=icao,
            callsign=_coerce_str(_at(row, 1)),
            origin_country=_coerce_str(_at(row, 2)),
            time_position=_coerce_float(_at(row, 3)),
            last_contact=_coerce_float(_at(row, 4)),
            lon=_coerce_float(_at(row, 5)),
            lat=_coerce_float(_at(row, 6)),
            baro_altitude=_coerce_float(_at(row, 7)),
            on_ground=bool(_at(row, 8)),
            velocity=_coerce_float(_at(row, 9)),
            true_track=_coerce_float(_at(row, 10)),
            vertical_rate=_coerce_float(_at(row, 11)),
            geo_altitude=_coerce_float(_at(row, 13)),
            squawk=_coerce_str(_at(row, 14)),
            spi=bool(_at(row, 15)),
            position_source=_at(row, 16),
        )
    except ValidationError:
        logger.debug("Dropping undecodable state row for %r", icao, exc_info=True)
        return None


def parse_states(rows: Any) -> list[StateVector]:
    """Decode a ``states`` list; None or a non-list yields an empty list."""
    if not isinstance(rows, list):
        return []
    out: list[StateVector] = []
    dropped = 0
    for row in rows:
        rec = parse_state_row(row)
        if rec is None:
            dropped += 1
            continue
        out.append(rec)
    if dropped:
        logger.debug("Dropped %d malformed state rows of %d", dropped, len(rows))
    return out


def parse_payload(data: Any) -> Snapshot:
    """Decode a full response body. Missing ``states`` is an empty snapshot."""
    if not isinstance(data, dict):
        return Snapshot()
    return Snapshot(
        records=parse_states(data.get("states")),
        server_time=_coerce_float(data.get("time")),
    )
