"""Pure mapping from aircraft state to visual attributes and display text.

Nothing in this module touches the sink or keeps state; the reconciler and
the selection controller call into it to build marker styles, popups and
the detail view.

Colour banding
--------------
Barometric altitude (metres) maps onto eight non-overlapping bands, each
band's upper bound exclusive:

    < 1000   #FF4500  orange-red (ground / take-off)
    < 3000   #FF8C00
    < 5000   #FFD700
    < 7000   #32CD32
    < 9000   #00CED1
    < 11000  #1E90FF  typical cruise
    < 13000  #0000FF
    >= 13000 #8A2BE2  high altitude

Unknown altitude is grey (#999999).
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import Optional, Tuple

from skytrace.core.models import PositionSource, StateVector

__all__ = [
    "ALTITUDE_BANDS_M",
    "ALTITUDE_COLORS",
    "UNKNOWN_ALTITUDE_COLOR",
    "MarkerStyle",
    "DetailView",
    "altitude_color",
    "rotation_deg",
    "rotation_transform",
    "meters_to_feet",
    "mps_to_knots",
    "mps_to_fpm",
    "format_altitude",
    "format_speed",
    "vertical_trend",
    "format_vertical_rate",
    "source_label",
    "seen_since",
    "popup_lines",
    "marker_style",
    "detail_view",
]

FT_PER_M = 3.28084
KT_PER_MPS = 1.94384
FPM_PER_MPS = FT_PER_M * 60.0

# Level flight dead band for the vertical trend arrow (m/s).
VERTICAL_DEADBAND_MPS = 0.5

ALTITUDE_BANDS_M: Tuple[float, ...] = (
    1000.0,
    3000.0,
    5000.0,
    7000.0,
    9000.0,
    11000.0,
    13000.0,
)
ALTITUDE_COLORS: Tuple[str, ...] = (
    "#FF4500",
    "#FF8C00",
    "#FFD700",
    "#32CD32",
    "#00CED1",
    "#1E90FF",
    "#0000FF",
    "#8A2BE2",
)
UNKNOWN_ALTITUDE_COLOR = "#999999"

GROUND = "GND"
MISSING = "---"

_SOURCE_LABELS = {
    PositionSource.ADSB: "ADS-B",
    PositionSource.ASTERIX: "ASTERIX",
    PositionSource.MLAT: "MLAT",
}


@dataclass(frozen=True)
class MarkerStyle:
    lat: float
    lon: float
    rotation_deg: float
    color: str
    selected: bool
    popup: Tuple[str, ...]


@dataclass(frozen=True)
class DetailView:
    """Formatted fields of the side panel for the followed aircraft."""

    icao24: str
    callsign: str
    hex_label: str
    country: str
    speed: str
    altitude: str
    geo_altitude: str
    vertical_trend: str
    vertical_rate: str
    track: str
    position: str
    squawk: str
    source: str
    seen: str
    stale: bool
    fr24_url: str
    flightaware_url: str


def altitude_color(alt_m: Optional[float]) -> str:
    if alt_m is None:
        return UNKNOWN_ALTITUDE_COLOR
    return ALTITUDE_COLORS[bisect_right(ALTITUDE_BANDS_M, alt_m)]


def rotation_deg(heading: Optional[float]) -> float:
    """Clockwise rotation of a north-pointing glyph; absent heading is 0."""
    if heading is None:
        return 0.0
    return float(heading) % 360.0


def rotation_transform(heading: Optional[float]) -> str:
    return f"rotate({rotation_deg(heading):g}deg)"


def meters_to_feet(m: float) -> float:
    return m * FT_PER_M


def mps_to_knots(v: float) -> float:
    return v * KT_PER_MPS


def mps_to_fpm(v: float) -> float:
    return v * FPM_PER_MPS


def format_altitude(
    alt_m: Optional[float], on_ground: bool = False, missing: str = MISSING
) -> str:
    """Altitude in whole feet; ground status wins over any reported value."""
    if on_ground:
        return GROUND
    if alt_m is None:
        return missing
    return str(int(round(meters_to_feet(alt_m))))


def format_speed(velocity: Optional[float], missing: str = MISSING) -> str:
    if velocity is None:
        return missing
    return str(int(round(mps_to_knots(velocity))))


def vertical_trend(rate_mps: Optional[float]) -> str:
    """Return ``up``, ``down`` or ``level``."""
    rate = rate_mps or 0.0
    if rate > VERTICAL_DEADBAND_MPS:
        return "up"
    if rate < -VERTICAL_DEADBAND_MPS:
        return "down"
    return "level"


def format_vertical_rate(rate_mps: Optional[float]) -> str:
    """Absolute climb/descent rate, e.g. ``"1200 ft/min"``."""
    fpm = int(round(mps_to_fpm(rate_mps or 0.0)))
    return f"{abs(fpm)} ft/min"


def source_label(code: object) -> str:
    return _SOURCE_LABELS.get(PositionSource.from_code(code), "Unknown")


def seen_since(
    last_contact: Optional[float], now: float, stale_after_s: float = 300.0
) -> Tuple[str, bool]:
    """Return ("<n>s ago", stale) for a last-contact epoch time."""
    if last_contact is None:
        return MISSING, False
    diff = int(round(now - last_contact))
    return f"{diff}s ago", diff > stale_after_s


def popup_lines(rec: StateVector) -> Tuple[str, ...]:
    alt = format_altitude(rec.baro_altitude, rec.on_ground, missing="N/A")
    spd = format_speed(rec.velocity, missing="N/A")
    return (
        rec.callsign or "N/A",
        f"Alt: {alt} ft",
        f"Spd: {spd} kts",
        f"ICAO: {rec.icao24}",
    )


def marker_style(rec: StateVector, *, selected: bool = False) -> MarkerStyle:
    if rec.lat is None or rec.lon is None:
        raise ValueError(f"{rec.icao24} has no position")
    return MarkerStyle(
        lat=rec.lat,
        lon=rec.lon,
        rotation_deg=rotation_deg(rec.true_track),
        color=altitude_color(rec.baro_altitude),
        selected=selected,
        popup=popup_lines(rec),
    )


def detail_view(
    rec: StateVector, now: float, *, stale_after_s: float = 300.0
) -> DetailView:
    seen, stale = seen_since(rec.last_contact, now, stale_after_s)
    track = MISSING if rec.true_track is None else str(int(round(rec.true_track)))
    if rec.lat is not None and rec.lon is not None:
        position = f"{rec.lat:.4f}, {rec.lon:.4f}"
    else:
        position = MISSING
    callsign = rec.callsign or ""
    return DetailView(
        icao24=rec.icao24,
        callsign=rec.callsign or "N/A",
        hex_label=f"Hex: {rec.icao24.upper()}",
        country=rec.origin_country or "Unknown",
        speed=f"{format_speed(rec.velocity)} kt",
        altitude=f"{format_altitude(rec.baro_altitude, rec.on_ground)} ft",
        geo_altitude=f"{format_altitude(rec.geo_altitude)} ft",
        vertical_trend=vertical_trend(rec.vertical_rate),
        vertical_rate=format_vertical_rate(rec.vertical_rate),
        track=f"{track}°",
        position=position,
        squawk=rec.squawk or "----",
        source=source_label(rec.position_source),
        seen=seen,
        stale=stale,
        fr24_url=f"https://www.flightradar24.com/{callsign}",
        flightaware_url=f"https://flightaware.com/live/flight/{callsign}",
    )
