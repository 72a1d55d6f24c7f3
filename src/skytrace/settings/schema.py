"""Pydantic model for user settings."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Settings(BaseModel):
    """Settings persisted to disk.

    Parameters
    ----------
    relay_url: Base URL of the local relay that forwards to the feed.
    poll_interval_s: Minimum spacing between snapshot requests.
    display_budget: Maximum number of aircraft drawn at once.
    trail_max_points: Trail history per aircraft.
    idle_timeout_s: Inactivity before polling pauses; null disables it.
    stale_after_s: Last-contact age beyond which the detail view is stale.
    discard_results_while_idle: Drop a response that lands after going idle
        instead of applying it.
    """

    relay_url: str = Field(default="http://localhost:3000")
    poll_interval_s: float = Field(default=5.0)
    request_timeout_s: float = Field(default=10.0)
    display_budget: int = Field(default=750)
    trail_max_points: int = Field(default=50)
    idle_timeout_s: Optional[float] = Field(default=60.0)
    stale_after_s: float = Field(default=300.0)
    # Regions wider or taller than this are fetched with a global query.
    global_query_threshold_deg: float = Field(default=10.0)
    # Bounded queries are clamped to this span per axis.
    max_box_span_deg: float = Field(default=180.0)
    discard_results_while_idle: bool = Field(default=False)
    username: Optional[str] = Field(default=None)
    password: Optional[str] = Field(default=None)

    @field_validator(
        "poll_interval_s",
        "request_timeout_s",
        "stale_after_s",
        "global_query_threshold_deg",
        "max_box_span_deg",
    )
    @classmethod
    def _chk_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("idle_timeout_s")
    @classmethod
    def _chk_idle(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("idle_timeout_s must be > 0 or null")
        return v

    @field_validator("display_budget", "trail_max_points")
    @classmethod
    def _chk_count(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator("relay_url")
    @classmethod
    def _chk_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("relay_url must be an http(s) URL")
        return v

    @model_validator(mode="after")
    def _chk_credentials(self) -> "Settings":
        if bool(self.username) != bool(self.password):
            raise ValueError("username and password must be set together")
        if self.username and ":" in self.username:
            raise ValueError("username must not contain ':'")
        return self
