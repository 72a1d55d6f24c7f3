"""OpenSky-compatible relay ingest."""

from .client import (
    AuthFailed,
    FeedError,
    NetworkError,
    PollingClient,
    RateLimited,
    RateLimitedByServer,
)
from .parse import parse_payload, parse_states

__all__ = [
    "AuthFailed",
    "FeedError",
    "NetworkError",
    "PollingClient",
    "RateLimited",
    "RateLimitedByServer",
    "parse_payload",
    "parse_states",
]
