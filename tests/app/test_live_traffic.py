"""Tests for the LiveTraffic poll cycle on virtual time."""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence, Union

import pytest

from skytrace.app.live_traffic import (
    AUTH_FAILED_TOAST,
    NO_DATA_TOAST,
    RATE_LIMIT_TOAST,
    LiveTraffic,
)
from skytrace.core.models import Snapshot, StateVector
from skytrace.core.region import BoundingBox
from skytrace.core.scheduler import Scheduler
from skytrace.core.time import SimTimeSource
from skytrace.ingest.opensky.client import (
    AuthFailed,
    NetworkError,
    PollingClient,
    RateGate,
    RateLimitedByServer,
)
from skytrace.render.sink import HeadlessSink
from skytrace.settings.schema import Settings

Response = Union[Snapshot, Exception]

WALL0 = 1_700_000_000.0


class FakeClient:
    """Answers from a script of responses; shares the real RateGate."""

    def __init__(self, ts: SimTimeSource, responses: Sequence[Response] = ()) -> None:
        self.gate = RateGate(ts, 5.0)
        self.responses = list(responses)
        self.calls: list[Optional[BoundingBox]] = []
        self.credentials: Optional[tuple[str, str]] = None
        self.release: Optional[asyncio.Event] = None

    def can_poll(self) -> bool:
        return self.gate.can_poll()

    async def fetch_snapshot(self, region: Optional[BoundingBox]) -> Snapshot:
        self.gate.begin()
        try:
            self.calls.append(region)
            if self.release is not None:
                await self.release.wait()
            item = self.responses.pop(0) if self.responses else Snapshot()
            if isinstance(item, Exception):
                raise item
            return item
        finally:
            self.gate.complete()

    def set_credentials(self, username: Optional[str], password: Optional[str]) -> bool:
        if not username or not password:
            return False
        self.credentials = (username, password)
        return True


def _snap(*ids: str, velocity: float = 100.0) -> Snapshot:
    return Snapshot(
        records=[
            StateVector(icao24=i, lat=50.0 + n, lon=1.0, velocity=velocity)
            for n, i in enumerate(ids)
        ],
        server_time=WALL0,
    )


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


async def run_for(sched: Scheduler, seconds: int) -> None:
    for _ in range(seconds):
        sched.advance(1.0)
        await settle()


def _engine(
    responses: Sequence[Response] = (), **overrides: object
) -> tuple[SimTimeSource, Scheduler, FakeClient, HeadlessSink, LiveTraffic]:
    ts = SimTimeSource(start=0.0, wall_start=WALL0)
    sched = Scheduler(ts)
    client = FakeClient(ts, responses)
    sink = HeadlessSink()
    settings = Settings(**overrides)  # type: ignore[arg-type]
    engine = LiveTraffic(client, sink, sched, settings=settings)
    return ts, sched, client, sink, engine


@pytest.mark.asyncio
async def test_start_polls_immediately_and_applies() -> None:
    _, _, client, sink, engine = _engine([_snap("aaa111", "bbb222")])
    engine.start()
    await settle()

    assert len(client.calls) == 1
    assert client.calls[0] is None
    assert set(sink.markers) == {"aaa111", "bbb222"}
    assert sink.count == 2
    assert sink.status == ("Updated", "active")
    assert sink.toast is None
    assert engine.cycles == 1


@pytest.mark.asyncio
async def test_poll_cadence_and_countdown() -> None:
    _, sched, client, sink, engine = _engine()
    engine.start()
    await settle()

    await run_for(sched, 1)
    assert sink.countdown == "(4s)"
    await run_for(sched, 3)
    assert sink.countdown == "(1s)"
    assert len(client.calls) == 1

    await run_for(sched, 1)
    assert len(client.calls) == 2
    await run_for(sched, 10)
    assert len(client.calls) == 4


@pytest.mark.asyncio
async def test_region_is_passed_through() -> None:
    _, sched, client, _, engine = _engine()
    box = BoundingBox(north=52.0, south=51.0, east=0.5, west=-0.5)
    engine.set_region(box)
    engine.start()
    await settle()
    assert client.calls == [box]


@pytest.mark.asyncio
async def test_requests_never_overlap() -> None:
    _, sched, client, sink, engine = _engine([_snap("aaa111")])
    client.release = asyncio.Event()
    engine.start()
    await settle()
    assert client.gate.outstanding

    await run_for(sched, 12)
    assert len(client.calls) == 1
    assert sink.countdown == "(Updating...)"

    client.release.set()
    await settle()
    assert engine.cycles == 1
    # Gate measures from completion, so the next poll is 5s later.
    client.release = None
    await run_for(sched, 4)
    assert len(client.calls) == 1
    await run_for(sched, 1)
    assert len(client.calls) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, status, toast",
    [
        (RateLimitedByServer("429"), "Rate Limited", RATE_LIMIT_TOAST),
        (AuthFailed("401"), "Auth Error", AUTH_FAILED_TOAST),
        (NetworkError("HTTP 503", status=503), "Network Error", "Network Error (HTTP 503)"),
        (
            NetworkError("Is the relay running at http://x?", relay_unreachable=True),
            "Network Error",
            "Network Error (Is the relay running at http://x?)",
        ),
    ],
)
async def test_errors_are_reported_and_polling_continues(
    error: Exception, status: str, toast: str
) -> None:
    _, sched, client, sink, engine = _engine([error, _snap("aaa111")])
    engine.start()
    await settle()

    assert sink.status == (status, "error")
    assert sink.toast == toast
    assert engine.consec_errors == 1
    assert engine.last_error is error
    assert engine.cycles == 0

    await run_for(sched, 5)
    assert len(client.calls) == 2
    assert engine.consec_errors == 0
    assert sink.status == ("Updated", "active")
    assert "aaa111" in sink.markers


@pytest.mark.asyncio
async def test_empty_snapshot_toast() -> None:
    _, _, _, sink, engine = _engine([Snapshot()])
    engine.start()
    await settle()
    assert sink.toast == NO_DATA_TOAST
    assert sink.count == 0


@pytest.mark.asyncio
async def test_over_budget_snapshot_is_decimated() -> None:
    snap = Snapshot(
        records=[
            StateVector(icao24="slow01", lat=1.0, lon=1.0, velocity=10.0),
            StateVector(icao24="fast01", lat=2.0, lon=2.0, velocity=250.0),
            StateVector(icao24="mid001", lat=3.0, lon=3.0, velocity=120.0),
        ]
    )
    _, sched, _, sink, engine = _engine([snap], display_budget=2)
    engine.start()
    await settle()

    assert set(sink.markers) == {"fast01", "mid001"}
    assert sink.count == 3
    assert sink.toast == "High Traffic: Showing 2 of 3 aircraft"
    await run_for(sched, 3)
    assert sink.toast is None


@pytest.mark.asyncio
async def test_selection_pinned_through_decimation_and_follows_updates() -> None:
    first = Snapshot(
        records=[
            StateVector(icao24="slow01", lat=1.0, lon=1.0, velocity=10.0),
            StateVector(icao24="fast01", lat=2.0, lon=2.0, velocity=250.0),
        ]
    )
    second = Snapshot(
        records=[
            StateVector(icao24="slow01", lat=1.1, lon=1.0, velocity=10.0),
            StateVector(icao24="fast01", lat=2.1, lon=2.0, velocity=250.0),
            StateVector(icao24="fast02", lat=3.0, lon=3.0, velocity=240.0),
        ]
    )
    _, sched, _, sink, engine = _engine([first, second], display_budget=2)
    engine.start()
    await settle()

    assert engine.select("slow01")
    assert sink.markers["slow01"].style.selected is True

    await run_for(sched, 5)
    assert set(sink.markers) == {"slow01", "fast01"}
    assert engine.selection.selected == "slow01"
    assert sink.trail == [(1.0, 1.0), (1.1, 1.0)]
    assert sink.detail is not None and sink.detail.position == "1.1000, 1.0000"


@pytest.mark.asyncio
async def test_selected_aircraft_vanishing_clears_selection() -> None:
    _, sched, _, sink, engine = _engine([_snap("aaa111", "bbb222"), _snap("bbb222")])
    engine.start()
    await settle()
    engine.select("aaa111")
    assert sink.detail is not None

    await run_for(sched, 5)
    assert engine.selection.selected is None
    assert sink.detail is None
    assert "aaa111" not in sink.markers


@pytest.mark.asyncio
async def test_idle_after_inactivity_then_resume_on_activity() -> None:
    _, sched, client, sink, engine = _engine()
    engine.start()
    await settle()

    await run_for(sched, 60)
    assert engine.idle.idle
    assert sink.status == ("Idle (Paused)", "idle")
    calls = len(client.calls)
    assert calls == 12

    await run_for(sched, 30)
    assert len(client.calls) == calls
    assert sink.countdown == ""

    engine.notify_activity()
    await settle()
    assert not engine.idle.idle
    assert len(client.calls) == calls + 1


@pytest.mark.asyncio
async def test_background_pauses_and_foreground_polls_immediately() -> None:
    _, sched, client, sink, engine = _engine()
    engine.start()
    await settle()

    engine.set_visible(False)
    assert sink.status == ("Background (Paused)", "idle")
    await run_for(sched, 20)
    assert len(client.calls) == 1

    engine.set_visible(True)
    await settle()
    assert len(client.calls) == 2
    assert sink.status == ("Updated", "active")


@pytest.mark.asyncio
async def test_result_landing_while_idle_is_applied_by_default() -> None:
    _, _, client, sink, engine = _engine([_snap("aaa111")])
    client.release = asyncio.Event()
    engine.start()
    await settle()

    engine.set_visible(False)
    client.release.set()
    await settle()
    assert "aaa111" in sink.markers
    assert engine.cycles == 1


@pytest.mark.asyncio
async def test_result_landing_while_idle_can_be_discarded() -> None:
    _, _, client, sink, engine = _engine(
        [_snap("aaa111")], discard_results_while_idle=True
    )
    client.release = asyncio.Event()
    engine.start()
    await settle()

    engine.set_visible(False)
    client.release.set()
    await settle()
    assert sink.markers == {}
    assert engine.cycles == 0


@pytest.mark.asyncio
async def test_set_credentials_triggers_poll_when_gate_open() -> None:
    _, sched, client, _, engine = _engine()
    engine.start()
    await settle()
    assert engine.set_credentials("", "pw") is False

    await run_for(sched, 3)
    # Gate still closed: credentials stored, no extra request.
    assert engine.set_credentials("user", "pw") is True
    await settle()
    assert client.credentials == ("user", "pw")
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_stop_and_reset() -> None:
    _, sched, client, sink, engine = _engine([_snap("aaa111")])
    engine.start()
    await settle()
    engine.select("aaa111")

    engine.reset()
    assert not engine.running
    assert sink.markers == {}
    assert engine.selection.selected is None
    await run_for(sched, 10)
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_independent_instances() -> None:
    _, _, _, sink_a, engine_a = _engine([_snap("aaa111")])
    _, _, _, sink_b, engine_b = _engine([_snap("bbb222")])
    engine_a.start()
    engine_b.start()
    await settle()
    assert set(sink_a.markers) == {"aaa111"}
    assert set(sink_b.markers) == {"bbb222"}
    await engine_a.drain()
    await engine_b.drain()


def test_rejected_credentials_do_not_poll() -> None:
    ts = SimTimeSource()
    sched = Scheduler(ts)
    client = PollingClient("http://127.0.0.1:9", ts=ts)
    engine = LiveTraffic(client, HeadlessSink(), sched)
    # No running loop is needed: a refused pair never reaches poll_now.
    assert engine.set_credentials("user:name", "pw") is False
    assert engine.set_credentials("user", "") is False
    assert not client.has_credentials
