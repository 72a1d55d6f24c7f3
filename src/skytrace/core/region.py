"""Geographic query regions.

A :class:`BoundingBox` is what the map viewport hands to the polling
client. The client never sends an arbitrary box upstream: boxes wider or
taller than ``global_threshold_deg`` become a global query, and bounded
boxes are clamped to ``max_span_deg`` per axis around their centre.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

__all__ = [
    "BoundingBox",
    "GLOBAL_QUERY_THRESHOLD_DEG",
    "MAX_BOX_SPAN_DEG",
    "is_valid_coordinate",
]

GLOBAL_QUERY_THRESHOLD_DEG = 10.0
MAX_BOX_SPAN_DEG = 180.0

# Rough length of one degree of latitude.
_KM_PER_DEG = 111.0


def is_valid_coordinate(lat: float, lon: float) -> bool:
    """Return True for finite latitude/longitude within geographic range."""
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
        return False
    return -90.0 <= lat_f <= 90.0 and -180.0 <= lon_f <= 180.0


@dataclass(frozen=True, slots=True)
class BoundingBox:
    north: float
    south: float
    east: float
    west: float

    @classmethod
    def around(cls, lat: float, lon: float, radius_km: float) -> "BoundingBox":
        """Approximate box of *radius_km* around a centre point.

        Uses 111 km per degree of latitude; longitude degrees shrink with
        cos(latitude).
        """
        lat_delta = radius_km / _KM_PER_DEG
        cos_lat = math.cos(math.radians(lat))
        # Avoid blowing up at the poles.
        lon_delta = radius_km / (_KM_PER_DEG * max(cos_lat, 1e-6))
        return cls(
            north=lat + lat_delta,
            south=lat - lat_delta,
            east=lon + lon_delta,
            west=lon - lon_delta,
        )

    @property
    def lat_span(self) -> float:
        return abs(self.north - self.south)

    @property
    def lon_span(self) -> float:
        return abs(self.east - self.west)

    @property
    def center(self) -> tuple[float, float]:
        return ((self.north + self.south) / 2.0, (self.east + self.west) / 2.0)

    def needs_global_query(
        self, threshold_deg: float = GLOBAL_QUERY_THRESHOLD_DEG
    ) -> bool:
        """True when either span exceeds *threshold_deg*."""
        return self.lat_span > threshold_deg or self.lon_span > threshold_deg

    def clamp(self, max_span_deg: float = MAX_BOX_SPAN_DEG) -> "BoundingBox":
        """Shrink any axis wider than *max_span_deg* symmetrically about the centre.

        Axes within the limit are returned unchanged. Clamped edges are then
        bounded to the valid latitude/longitude range, so a window centred
        near a pole or the antimeridian comes out narrower than the limit.
        """
        north, south, east, west = self.north, self.south, self.east, self.west
        c_lat, c_lon = self.center
        half = max_span_deg / 2.0
        if self.lat_span > max_span_deg:
            north = min(90.0, c_lat + half)
            south = max(-90.0, c_lat - half)
        if self.lon_span > max_span_deg:
            east = min(180.0, c_lon + half)
            west = max(-180.0, c_lon - half)
        return BoundingBox(north=north, south=south, east=east, west=west)
