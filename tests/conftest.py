from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from skytrace.core.models import StateVector


@pytest.fixture
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def load_fixture(fixtures_dir: Path) -> Callable[[str], Any]:
    def _load(name: str) -> Any:
        with (fixtures_dir / name).open("r", encoding="utf-8") as f:
            return json.load(f)

    return _load


def create_state(
    icao24: str,
    *,
    lat: Optional[float] = 51.5,
    lon: Optional[float] = -0.1,
    velocity: Optional[float] = None,
    baro_altitude: Optional[float] = None,
    true_track: Optional[float] = None,
    last_contact: Optional[float] = None,
    callsign: Optional[str] = None,
    on_ground: bool = False,
) -> StateVector:
    """Factory to create StateVector with defaults."""
    return StateVector(
        icao24=icao24,
        lat=lat,
        lon=lon,
        velocity=velocity,
        baro_altitude=baro_altitude,
        true_track=true_track,
        last_contact=last_contact,
        callsign=callsign,
        on_ground=on_ground,
    )


@pytest.fixture
def make_state() -> Callable[..., StateVector]:
    return create_state
