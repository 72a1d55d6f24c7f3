"""Runtime configuration helpers.

Small aggregator that merges, in increasing precedence: model defaults,
the persisted Settings store, credentials from the environment
(``SKYTRACE_USERNAME`` / ``SKYTRACE_PASSWORD``) and CLI overrides, and
resolves the query region the session starts with.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

from .core.region import BoundingBox, is_valid_coordinate
from .settings.schema import Settings
from .settings.store import SettingsStore

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_KM = 50.0


@dataclass(slots=True)
class RuntimeConfig:
    settings: Settings
    # None means a global query.
    region: Optional[BoundingBox]
    cycles: int = 0


def _env_credentials() -> dict[str, str]:
    user = os.environ.get("SKYTRACE_USERNAME")
    password = os.environ.get("SKYTRACE_PASSWORD")
    if user and password:
        if ":" in user:
            logger.warning("Ignoring SKYTRACE_USERNAME containing ':'")
            return {}
        return {"username": user, "password": password}
    if user or password:
        logger.warning("Ignoring partial SKYTRACE_USERNAME/SKYTRACE_PASSWORD")
    return {}


def _region_from_args(args: object) -> Optional[BoundingBox]:
    """Resolve ``bbox`` or ``center``/``radius_km`` into a query region.

    Raises ValueError for the wrong number of values or coordinates out of
    range.
    """
    bbox = getattr(args, "bbox", None)
    if bbox:
        if len(bbox) != 4:
            raise ValueError(f"bbox needs NORTH SOUTH EAST WEST, got {bbox!r}")
        north, south, east, west = (float(v) for v in bbox)
        if not (is_valid_coordinate(north, east) and is_valid_coordinate(south, west)):
            raise ValueError(f"bbox out of range: {bbox!r}")
        return BoundingBox(north=north, south=south, east=east, west=west)
    center = getattr(args, "center", None)
    if center:
        if len(center) != 2:
            raise ValueError(f"center needs LAT LON, got {center!r}")
        lat, lon = (float(v) for v in center)
        if not is_valid_coordinate(lat, lon):
            raise ValueError(f"center out of range: {center!r}")
        radius = getattr(args, "radius_km", None) or DEFAULT_RADIUS_KM
        return BoundingBox.around(lat, lon, float(radius))
    return None


def make_runtime_config(*, args: Optional[object] = None) -> RuntimeConfig:
    """Build a RuntimeConfig from persisted settings and optional CLI *args*
    (an argparse.Namespace-like object).
    """
    base = SettingsStore.load()
    overrides: dict[str, Any] = {}
    overrides.update(_env_credentials())

    region: Optional[BoundingBox] = None
    cycles = 0
    if args is not None:
        for attr, key in (
            ("relay_url", "relay_url"),
            ("budget", "display_budget"),
            ("idle_timeout", "idle_timeout_s"),
            ("username", "username"),
            ("password", "password"),
        ):
            value = getattr(args, attr, None)
            if value is not None:
                overrides[key] = value
        region = _region_from_args(args)
        cycles = int(getattr(args, "cycles", 0) or 0)

    settings = base
    if overrides:
        merged = base.model_dump()
        merged.update(overrides)
        settings = Settings.model_validate(merged)
    return RuntimeConfig(settings=settings, region=region, cycles=cycles)
