#!/usr/bin/env python3
"""Resolve UK mobile coverage along a route between two postcodes.

Usage:
    PYTHONPATH=src:. python scripts/route_coverage.py "SW1A 1AA" "EC2N 2DB"
    PYTHONPATH=src:. python scripts/route_coverage.py "SW1A 1AA" "EC2N 2DB" \
        --profile cycling-regular --samples 100
    PYTHONPATH=src:. python scripts/route_coverage.py   # repeat the last route

Prints a per-operator summary (cumulative "or better" percentages and rank)
followed by tile cache statistics.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

import httpx

from application.coverage_sampling import CoverageSamplingOrchestrator
from domain.coverage.config import CoverageConfig
from domain.coverage.errors import CoverageRunError
from domain.coverage.summary import summarize_coverage
from domain.coverage.value_objects import CoverageRun, Operator
from infrastructure.coverage import (
    TRAVEL_PROFILES,
    OsrmRouter,
    PostcodesIoGeocoder,
    PyprojGeodeticBridge,
    RasterioPixelSampler,
    SqliteTileStore,
    TileCache,
)
from infrastructure.coverage.routing import DEFAULT_PROFILE

DEFAULT_CACHE_DB = Path.home() / ".cache" / "route-coverage" / "tiles.db"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("start", nargs="?", help="Start postcode (e.g. 'SW1A 1AA')")
    parser.add_argument("end", nargs="?", help="End postcode")
    parser.add_argument(
        "--profile",
        choices=TRAVEL_PROFILES,
        default=None,
        help=f"Travel profile (default: {DEFAULT_PROFILE})",
    )
    parser.add_argument(
        "--samples",
        type=int,
        default=None,
        help="Number of points sampled along the route",
    )
    parser.add_argument(
        "--cache-db",
        type=Path,
        default=DEFAULT_CACHE_DB,
        help=f"SQLite tile cache (default: {DEFAULT_CACHE_DB})",
    )
    parser.add_argument(
        "--clear-cache", action="store_true", help="Empty the tile cache first"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def print_run(coverage_run: CoverageRun, operators: Sequence[Operator]) -> None:
    print("=" * 60)
    print(f"{coverage_run.start} -> {coverage_run.end} ({coverage_run.profile})")
    km = coverage_run.route.total_distance_m / 1000
    reused = " [route reused]" if coverage_run.route_reused else ""
    print(f"{len(coverage_run.results)} sample(s) over {km:.1f} km{reused}")
    print("=" * 60)
    print(
        f"{'#':>2} {'Network':<10} {'Indoor+':>8} {'Indoor':>7} "
        f"{'Outdoor':>8} {'Variable':>9} {'Poor':>5} {'Avg':>5}"
    )
    for summary in summarize_coverage(coverage_run.results, operators):
        print(
            f"{summary.rank:>2} {summary.operator.display_name:<10} "
            f"{summary.indoor_plus_pct:>7}% {summary.indoor_pct:>6}% "
            f"{summary.outdoor_pct:>7}% {summary.variable_pct:>8}% "
            f"{summary.poor_none_pct:>4}% {summary.average_level:>5.2f}"
        )
    print()
    stats = coverage_run.stats
    print(
        f"Tiles: {stats.tiles_fetched} fetched, {stats.tiles_from_cache} from cache "
        f"({stats.total_requests} requests)"
    )
    if coverage_run.error_count():
        print(f"WARNING: {coverage_run.error_count()} sample/network pair(s) failed")


def _print_progress(percent: float, message: str) -> None:
    print(f"\r[{percent:5.1f}%] {message:<50}", end="", file=sys.stderr, flush=True)


async def run(args: argparse.Namespace) -> int:
    config = CoverageConfig()
    if args.samples is not None:
        config = config.model_copy(update={"sample_count": args.samples})

    store = SqliteTileStore(args.cache_db)
    async with httpx.AsyncClient(
        timeout=config.http_timeout_s, follow_redirects=True
    ) as client:
        cache = TileCache(config, store=store, client=client)
        orchestrator = CoverageSamplingOrchestrator(
            config=config,
            bridge=PyprojGeodeticBridge(),
            tile_cache=cache,
            raster_sampler=RasterioPixelSampler(),
            geocoder=PostcodesIoGeocoder(client),
            router=OsrmRouter(client),
            settings_store=store,
            progress=_print_progress,
        )

        if args.clear_cache:
            await cache.clear()

        start, end, profile = args.start, args.end, args.profile
        if start is None:
            last = await orchestrator.last_query()
            if last is None:
                print("ERROR: No start postcode given and no previous route saved")
                return 2
            start, end, saved_profile = last
            profile = profile or saved_profile
        end = end or start

        try:
            result = await orchestrator.analyze_route(
                start, end, profile or DEFAULT_PROFILE
            )
        except CoverageRunError as e:
            print(file=sys.stderr)
            print(f"ERROR: {e}")
            return 1
        print(file=sys.stderr)

        print_run(result, config.operators)
        print(f"Persistent cache: {await cache.stored_tile_count()} tile(s)")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run the CLI.

    Returns:
        0 on success, 1 when the run failed, 2 on bad arguments
    """
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.samples is not None and args.samples < 1:
        print("ERROR: --samples must be at least 1")
        return 2
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
