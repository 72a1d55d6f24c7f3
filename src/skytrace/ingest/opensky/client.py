"""
Rate-limited snapshot client for an OpenSky-compatible relay.

One request may be outstanding at a time and consecutive requests are
spaced by at least ``min_poll_interval_s`` (measured from the completion of
the previous request). The client never queues or retries; callers check
:meth:`PollingClient.can_poll` on their own cadence and a call made too early
raises :class:`RateLimited` without touching the network.

Large viewports are exchanged for a global query: bounded queries over big
areas are rejected upstream far more often than unbounded ones.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from skytrace.core.models import Snapshot
from skytrace.core.region import (
    GLOBAL_QUERY_THRESHOLD_DEG,
    MAX_BOX_SPAN_DEG,
    BoundingBox,
)
from skytrace.core.time import RealTimeSource, TimeSource
from skytrace.ingest.opensky.parse import parse_payload

__all__ = [
    "FeedError",
    "RateLimited",
    "RateLimitedByServer",
    "AuthFailed",
    "NetworkError",
    "RateGate",
    "PollingClient",
    "build_query_params",
]

logger = logging.getLogger(__name__)


class FeedError(Exception):
    """Base class for snapshot fetch failures; all are recoverable."""


class RateLimited(FeedError):
    """The local rate gate refused the call; no request was made."""


class RateLimitedByServer(FeedError):
    """Upstream answered HTTP 429."""


class AuthFailed(FeedError):
    """Upstream answered HTTP 401."""


class NetworkError(FeedError):
    """Transport failure or unexpected HTTP status."""

    def __init__(
        self,
        detail: str,
        *,
        status: Optional[int] = None,
        relay_unreachable: bool = False,
    ) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status = status
        self.relay_unreachable = relay_unreachable


def _fmt_deg(v: float) -> str:
    f = float(v)
    if f.is_integer():
        return str(int(f))
    return repr(f)


def build_query_params(
    region: Optional[BoundingBox],
    cache_buster: int,
    *,
    global_threshold_deg: float = GLOBAL_QUERY_THRESHOLD_DEG,
    max_span_deg: float = MAX_BOX_SPAN_DEG,
) -> dict[str, str]:
    """Return the query string parameters for *region*.

    ``None`` or a region whose span exceeds *global_threshold_deg* on either
    axis yields a global query carrying only the cache buster.
    """
    if region is None or region.needs_global_query(global_threshold_deg):
        return {"_": str(cache_buster)}
    box = region.clamp(max_span_deg)
    return {
        "lamin": _fmt_deg(box.south),
        "lomin": _fmt_deg(box.west),
        "lamax": _fmt_deg(box.north),
        "lomax": _fmt_deg(box.east),
        "_": str(cache_buster),
    }


class RateGate:
    """Minimum-interval gate with a single outstanding request.

    The interval is measured from the completion of the previous request.
    A gate that has never been used is open.
    """

    def __init__(self, ts: TimeSource, min_interval_s: float) -> None:
        self._ts = ts
        self.min_interval_s = float(min_interval_s)
        self._last_request_time: float | None = None
        self._outstanding = False

    @property
    def last_request_time(self) -> float | None:
        return self._last_request_time

    @property
    def outstanding(self) -> bool:
        return self._outstanding

    def can_poll(self) -> bool:
        if self._outstanding:
            return False
        if self._last_request_time is None:
            return True
        return self._ts.monotonic() - self._last_request_time >= self.min_interval_s

    def begin(self) -> None:
        if not self.can_poll():
            raise RateLimited("poll attempted before the minimum interval elapsed")
        self._outstanding = True

    def complete(self) -> None:
        self._outstanding = False
        self._last_request_time = self._ts.monotonic()


class PollingClient:
    """Fetch aircraft snapshots from the relay under rate governance."""

    def __init__(
        self,
        base_url: str,
        *,
        ts: TimeSource | None = None,
        min_poll_interval_s: float = 5.0,
        timeout_s: float = 10.0,
        global_threshold_deg: float = GLOBAL_QUERY_THRESHOLD_DEG,
        max_span_deg: float = MAX_BOX_SPAN_DEG,
        session: Optional[aiohttp.ClientSession] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> None:
        self._base_url = base_url
        self._ts: TimeSource = ts or RealTimeSource()
        self._gate = RateGate(self._ts, min_poll_interval_s)
        self._timeout_s = float(timeout_s)
        self._global_threshold_deg = float(global_threshold_deg)
        self._max_span_deg = float(max_span_deg)

        self._ext_session = session
        self._session: Optional[aiohttp.ClientSession] = session
        self._auth: Optional[aiohttp.BasicAuth] = None
        self._last_cache_buster = 0

        if username or password:
            self.set_credentials(username, password)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def gate(self) -> RateGate:
        return self._gate

    @property
    def has_credentials(self) -> bool:
        return self._auth is not None

    def set_credentials(self, username: Optional[str], password: Optional[str]) -> bool:
        """Attach Basic credentials to subsequent requests.

        Both values must be non-empty and the username must not contain
        ":"; otherwise nothing changes and False is returned.
        """
        if not username or not password:
            return False
        try:
            auth = aiohttp.BasicAuth(login=username, password=password)
        except ValueError as e:
            logger.warning("Rejected credentials for %s: %s", self._base_url, e)
            return False
        self._auth = auth
        logger.info("Credentials set for %s", self._base_url)
        return True

    def clear_credentials(self) -> None:
        self._auth = None

    def can_poll(self) -> bool:
        return self._gate.can_poll()

    def _next_cache_buster(self) -> int:
        ms = int(self._ts.wall_time() * 1000)
        if ms <= self._last_cache_buster:
            ms = self._last_cache_buster + 1
        self._last_cache_buster = ms
        return ms

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the internally created session; injected sessions are left open."""
        if self._session is not None and self._session is not self._ext_session:
            await self._session.close()
        self._session = self._ext_session

    async def __aenter__(self) -> "PollingClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def fetch_snapshot(self, region: Optional[BoundingBox]) -> Snapshot:
        """Fetch one snapshot for *region* (None means global).

        Raises:
            RateLimited: the gate is closed; no request was made.
            RateLimitedByServer: HTTP 429.
            AuthFailed: HTTP 401.
            NetworkError: any other failure.
        """
        self._gate.begin()
        try:
            return await self._request(region)
        finally:
            self._gate.complete()

    async def _request(self, region: Optional[BoundingBox]) -> Snapshot:
        params = build_query_params(
            region,
            self._next_cache_buster(),
            global_threshold_deg=self._global_threshold_deg,
            max_span_deg=self._max_span_deg,
        )
        if "lamin" not in params:
            logger.debug("Region is large or unset; issuing global query")
        session = self._ensure_session()
        try:
            async with session.get(
                self._base_url, params=params, auth=self._auth
            ) as resp:
                if resp.status == 429:
                    raise RateLimitedByServer("upstream rate limit (HTTP 429)")
                if resp.status == 401:
                    raise AuthFailed("upstream rejected credentials (HTTP 401)")
                if not 200 <= resp.status < 300:
                    raise NetworkError(f"HTTP {resp.status}", status=resp.status)
                try:
                    data = await resp.json(content_type=None)
                except ValueError as e:
                    raise NetworkError(f"invalid JSON body: {e}") from e
        except aiohttp.ClientConnectorError as e:
            logger.error("Relay unreachable at %s: %s", self._base_url, e)
            raise NetworkError(
                f"Is the relay running at {self._base_url}?",
                relay_unreachable=True,
            ) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"{e.__class__.__name__}: {e}") from e
        except asyncio.TimeoutError as e:
            raise NetworkError(f"timed out after {self._timeout_s:.1f}s") from e

        return parse_payload(data)
