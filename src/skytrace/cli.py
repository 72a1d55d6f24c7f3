"""Command-line interface for SkyTrace.

Runs the live traffic engine headless against a relay, logging a short
summary after every applied snapshot. Useful for checking a relay and
credentials without a map front-end.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from skytrace import __version__
from skytrace.app.live_traffic import LiveTraffic
from skytrace.config import RuntimeConfig, make_runtime_config
from skytrace.core.region import is_valid_coordinate
from skytrace.core.scheduler import Scheduler
from skytrace.core.time import RealTimeSource
from skytrace.ingest.opensky.client import PollingClient
from skytrace.render.sink import HeadlessSink

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments.

    When ``argv`` is None the values are read from ``sys.argv`` as usual.
    """
    p = argparse.ArgumentParser(description="SkyTrace live traffic (headless)")
    p.add_argument(
        "--relay-url",
        dest="relay_url",
        default=None,
        help="Relay base URL (default from settings: http://localhost:3000)",
    )
    region = p.add_mutually_exclusive_group()
    region.add_argument(
        "--bbox",
        nargs=4,
        type=float,
        metavar=("NORTH", "SOUTH", "EAST", "WEST"),
        default=None,
        help="Query region in degrees; omit for a global query",
    )
    region.add_argument(
        "--center",
        nargs=2,
        type=float,
        metavar=("LAT", "LON"),
        default=None,
        help="Centre of a region of --radius-km",
    )
    p.add_argument(
        "--radius-km",
        dest="radius_km",
        type=float,
        default=None,
        help="Radius around --center in km (default: 50)",
    )
    p.add_argument("--username", default=None, help="Feed username (Basic auth)")
    p.add_argument("--password", default=None, help="Feed password (Basic auth)")
    p.add_argument(
        "--budget",
        type=int,
        default=None,
        help="Maximum aircraft kept per snapshot (default: 750)",
    )
    p.add_argument(
        "--cycles",
        type=int,
        default=0,
        help="Exit after this many applied snapshots (0 = run until Ctrl+C)",
    )
    p.add_argument(
        "--idle-timeout",
        dest="idle_timeout",
        type=float,
        default=None,
        help="Pause polling after this many seconds (default: never when headless)",
    )
    p.add_argument(
        "--log-level",
        dest="log_level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    p.add_argument("--version", action="store_true", help="Print version and exit")
    args = p.parse_args(argv)
    _check_region(p, args)
    return args


def _check_region(p: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if args.bbox is not None:
        north, south, east, west = args.bbox
        if not (
            is_valid_coordinate(north, east) and is_valid_coordinate(south, west)
        ):
            p.error("--bbox edges must be within lat [-90, 90] and lon [-180, 180]")
        if south > north:
            p.error("--bbox SOUTH must not be greater than NORTH")
    if args.center is not None and not is_valid_coordinate(*args.center):
        p.error("--center must be within lat [-90, 90] and lon [-180, 180]")
    if args.radius_km is not None and args.radius_km <= 0:
        p.error("--radius-km must be > 0")


def _log_cycle(engine: LiveTraffic, sink: HeadlessSink) -> None:
    text, kind = sink.status
    logger.info(
        "cycle %d: %d tracked of %d in feed, status=%s (%s)",
        engine.cycles,
        len(engine.reconciler),
        sink.count,
        text,
        kind,
    )


async def run_headless(
    cfg: RuntimeConfig, *, idle_timeout_s: Optional[float] = None
) -> LiveTraffic:
    """Run the engine until ``cfg.cycles`` snapshots were applied (0 = forever)."""
    settings = cfg.settings.model_copy(update={"idle_timeout_s": idle_timeout_s})
    clock = RealTimeSource()
    scheduler = Scheduler(clock)
    sink = HeadlessSink()

    async with PollingClient(
        settings.relay_url,
        ts=clock,
        min_poll_interval_s=settings.poll_interval_s,
        timeout_s=settings.request_timeout_s,
        global_threshold_deg=settings.global_query_threshold_deg,
        max_span_deg=settings.max_box_span_deg,
        username=settings.username,
        password=settings.password,
    ) as client:
        engine = LiveTraffic(client, sink, scheduler, settings=settings, region=cfg.region)
        sched_task = asyncio.create_task(scheduler.run(), name="scheduler")
        engine.start()
        try:
            seen_cycles = 0
            while not cfg.cycles or engine.cycles < cfg.cycles:
                await asyncio.sleep(0.1)
                if engine.cycles != seen_cycles:
                    seen_cycles = engine.cycles
                    _log_cycle(engine, sink)
        finally:
            engine.stop()
            await engine.drain()
            scheduler.stop()
            await sched_task
    return engine


async def run_async(argv: list[str] | None = None) -> None:
    """Async entrypoint for programmatic usage/testing."""
    args = parse_args(argv)
    if args.version:
        print(f"SkyTrace {__version__}")
        return
    cfg = make_runtime_config(args=args)
    await run_headless(cfg, idle_timeout_s=args.idle_timeout)


def main(argv: list[str] | None = None) -> None:
    """Synchronous entrypoint for the SkyTrace CLI."""
    args = parse_args(argv)
    if args.version:
        print(f"SkyTrace {__version__}")
        return
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(run_async(argv))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
