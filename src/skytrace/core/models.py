from __future__ import annotations

from enum import IntEnum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class PositionSource(IntEnum):
    """Origin of a state vector's position (OpenSky ``position_source``)."""

    ADSB = 0
    ASTERIX = 1
    MLAT = 2
    UNKNOWN = -1

    @classmethod
    def from_code(cls, code: object) -> "PositionSource":
        try:
            return cls(int(code))  # type: ignore[call-overload]
        except (TypeError, ValueError):
            return cls.UNKNOWN


class StateVector(BaseModel):
    """
    One aircraft's state as reported by a single feed snapshot.
    Units are the feed's: metres, metres/second, degrees, epoch seconds.
    Missing fields are None.
    """

    icao24: str = Field(..., description="Transponder address, stable key")
    callsign: Optional[str] = Field(None, description="Flight callsign, if known")
    origin_country: Optional[str] = None
    time_position: Optional[float] = None
    last_contact: Optional[float] = Field(
        None, description="Last contact with the transponder (epoch seconds)"
    )

    lon: Optional[float] = None
    lat: Optional[float] = None

    baro_altitude: Optional[float] = Field(
        None, description="Barometric altitude in metres"
    )
    on_ground: bool = False
    velocity: Optional[float] = Field(None, description="Ground speed in m/s")
    true_track: Optional[float] = Field(
        None, description="Track over ground in degrees clockwise from north"
    )
    vertical_rate: Optional[float] = Field(None, description="Climb rate in m/s")
    geo_altitude: Optional[float] = Field(
        None, description="Geometric altitude in metres"
    )
    squawk: Optional[str] = None
    spi: bool = False
    position_source: PositionSource = PositionSource.UNKNOWN

    @field_validator("icao24")
    @classmethod
    def _normalize_icao24(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("icao24 must not be empty")
        return v

    @field_validator("callsign")
    @classmethod
    def _strip_callsign(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("position_source", mode="before")
    @classmethod
    def _coerce_source(cls, v: object) -> PositionSource:
        return PositionSource.from_code(v)

    @property
    def has_position(self) -> bool:
        return self.lat is not None and self.lon is not None

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)

    def __repr__(self) -> str:  # pragma: no cover
        return f"StateVector({self.icao24} @ {self.lat}, {self.lon})"


class Snapshot(BaseModel):
    """One poll's worth of state vectors plus the feed's snapshot time."""

    records: List[StateVector] = Field(default_factory=list)
    server_time: Optional[float] = None

    def __len__(self) -> int:
        return len(self.records)


# Trail point: (lat, lon)
TrailPoint = Tuple[float, float]


__all__ = [
    "PositionSource",
    "StateVector",
    "Snapshot",
    "TrailPoint",
]
