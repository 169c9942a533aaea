"""Route coverage orchestration.

Sequences one run through its states:

    IDLE -> VALIDATING_INPUT -> RESOLVING_COORDINATES -> FETCHING_ROUTE
         -> SAMPLING -> RESOLVING_COVERAGE -> COMPLETE

A fatal error in any non-terminal state moves the run to FAILED and raises
CoverageRunError carrying that state as its phase. Task cancellation moves it
to CANCELLED; results gathered so far stay available via partial_results.

Per (point, operator) failures never abort a run: they are recorded on the
NetworkCoverageResult and logged.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Collection, Sequence
from enum import Enum

from domain.coverage.classification import extract_and_classify
from domain.coverage.config import CoverageConfig
from domain.coverage.errors import (
    CacheError,
    CoverageError,
    CoverageRunError,
    InputValidationError,
)
from domain.coverage.ports import GeodeticBridge, Geocoder, RasterSampler, Router, TileStore
from domain.coverage.routes import sample_by_count
from domain.coverage.tiling import TileGrid
from domain.coverage.value_objects import (
    CoverageResult,
    CoverageRun,
    GeoPoint,
    NetworkCoverageResult,
    Operator,
    RouteResult,
    SampledPoint,
    TileInfo,
    TilePixel,
)
from infrastructure.coverage.routing import DEFAULT_PROFILE, TRAVEL_PROFILES
from infrastructure.coverage.tile_cache import TileCache
from infrastructure.coverage.tile_store import (
    SETTING_ROUTE_END,
    SETTING_ROUTE_PROFILE,
    SETTING_ROUTE_START,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]

POSTCODE_PATTERN = re.compile(r"^[A-Z]{1,2}[0-9][A-Z0-9]?\s?[0-9][A-Z]{2}$", re.IGNORECASE)

# Progress milestones (percent)
_PROGRESS_START = 5.0
_PROGRESS_VALIDATED = 10.0
_PROGRESS_COORDINATES = 20.0
_PROGRESS_ROUTE = 30.0
_PROGRESS_SAMPLED = 40.0
_PROGRESS_COVERAGE_SPAN = 55.0  # per-sample progress stays below 95
_PROGRESS_DONE = 100.0


class RunState(str, Enum):
    IDLE = "idle"
    VALIDATING_INPUT = "validating_input"
    RESOLVING_COORDINATES = "resolving_coordinates"
    FETCHING_ROUTE = "fetching_route"
    SAMPLING = "sampling"
    RESOLVING_COVERAGE = "resolving_coverage"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TERMINAL_STATES = frozenset(
    {RunState.IDLE, RunState.COMPLETE, RunState.FAILED, RunState.CANCELLED}
)


def normalize_postcode(postcode: str) -> str:
    """Strip and upper-case a postcode, then check its shape.

    Raises:
        InputValidationError: not a UK postcode shape
    """
    normalized = postcode.strip().upper()
    if not POSTCODE_PATTERN.match(normalized):
        suggestion = "" if " " in normalized else " (missing space?)"
        raise InputValidationError(
            f"Invalid postcode format: {postcode.strip()}{suggestion}"
        )
    return normalized


class CoverageSamplingOrchestrator:
    """Resolve per-operator coverage along a route between two postcodes.

    Parameters
    ----------
    config: CoverageConfig
        Tile addressing, sampling, batching and palette parameters.
    bridge: GeodeticBridge
        WGS84 -> BNG projection; made ready while resolving coordinates.
    tile_cache: TileCache
        Tile source with hit/miss accounting.
    raster_sampler: RasterSampler
        Pixel reader for tile bytes.
    geocoder, router:
        Route acquisition collaborators.
    settings_store: TileStore | None
        Where the last successful query is remembered.
    progress: ProgressCallback | None
        Observer for (percent, label) updates; percent never decreases
        within a run.
    sleep:
        Awaitable delay used between batches (injectable for tests).
    """

    def __init__(
        self,
        *,
        config: CoverageConfig | None = None,
        bridge: GeodeticBridge,
        tile_cache: TileCache,
        raster_sampler: RasterSampler,
        geocoder: Geocoder,
        router: Router,
        settings_store: TileStore | None = None,
        progress: ProgressCallback | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        profiles: Collection[str] = TRAVEL_PROFILES,
    ) -> None:
        self.config = config or tile_cache.config
        self.grid = TileGrid(self.config)
        self.bridge = bridge
        self.tile_cache = tile_cache
        self.raster_sampler = raster_sampler
        self.geocoder = geocoder
        self.router = router
        self.settings_store = settings_store
        self._progress = progress
        self._sleep = sleep
        self._profiles = frozenset(profiles)

        self._state = RunState.IDLE
        self._partial: list[CoverageResult] = []
        # Size-1 route cache: ((start, end, profile), route) of the last successful run
        self._last_route: tuple[tuple[str, str, str], RouteResult] | None = None

    # -----------------------------------------------------------------------
    # Observable state
    # -----------------------------------------------------------------------
    @property
    def state(self) -> RunState:
        return self._state

    @property
    def partial_results(self) -> tuple[CoverageResult, ...]:
        """Results of the current (or last) run in index order, complete or not."""
        return tuple(self._partial)

    def _enter(self, state: RunState) -> None:
        logger.debug("Coverage run: %s -> %s", self._state.value, state.value)
        self._state = state

    def _report(self, percent: float, message: str) -> None:
        if self._progress is not None:
            self._progress(percent, message)

    def _ensure_not_running(self) -> None:
        if self._state not in _TERMINAL_STATES:
            raise RuntimeError(f"A coverage run is already in progress ({self._state.value})")

    # -----------------------------------------------------------------------
    # Full run
    # -----------------------------------------------------------------------
    async def analyze_route(
        self, start: str, end: str, profile: str = DEFAULT_PROFILE
    ) -> CoverageRun:
        """Geocode, route, sample and resolve coverage between two postcodes.

        Raises:
            CoverageRunError: validation, geocoding, routing or provider failure
            asyncio.CancelledError: the run was cancelled
            RuntimeError: another run is in progress
        """
        self._ensure_not_running()
        self._partial = []
        try:
            run = await self._run(start, end, profile)
        except asyncio.CancelledError:
            self._enter(RunState.CANCELLED)
            logger.info(
                "Coverage run cancelled after %d sample(s)", len(self._partial)
            )
            raise
        except CoverageError as e:
            phase = self._state
            self._enter(RunState.FAILED)
            logger.error("Coverage run failed during %s: %s", phase.value, e)
            raise CoverageRunError(phase.value, str(e)) from e
        except Exception:
            self._enter(RunState.FAILED)
            raise

        self._enter(RunState.COMPLETE)
        self._last_route = ((run.start, run.end, run.profile), run.route)
        await self._remember_query(run.start, run.end, run.profile)
        self._report(_PROGRESS_DONE, "Complete")
        logger.info(
            "Coverage run complete: %d sample(s), %d error(s), %d fetched / %d cached",
            len(run.results),
            run.error_count(),
            run.stats.tiles_fetched,
            run.stats.tiles_from_cache,
        )
        return run

    async def _run(self, start: str, end: str, profile: str) -> CoverageRun:
        self._report(_PROGRESS_START, "Initializing...")

        self._enter(RunState.VALIDATING_INPUT)
        start = normalize_postcode(start)
        end = normalize_postcode(end)
        if profile not in self._profiles:
            raise InputValidationError(
                f"Unknown travel profile: {profile} "
                f"(expected one of {', '.join(sorted(self._profiles))})"
            )
        self._report(_PROGRESS_VALIDATED, "Validating postcodes...")

        self._enter(RunState.RESOLVING_COORDINATES)
        await self.bridge.ensure_ready()
        key = (start, end, profile)
        reused = self._last_route is not None and self._last_route[0] == key
        single = start == end
        origin: GeoPoint | None = None
        if not reused:
            origin = await self.geocoder.resolve(start)
            destination = origin if single else await self.geocoder.resolve(end)
        self._report(_PROGRESS_COORDINATES, "Converting postcodes to coordinates...")

        self._enter(RunState.FETCHING_ROUTE)
        if reused:
            route = self._last_route[1]  # type: ignore[index]
            logger.info("Reusing route %s -> %s (%s)", start, end, profile)
        elif single:
            route = RouteResult(polyline=(origin,), total_distance_m=0.0)
        else:
            route = await self.router.route(origin, destination, profile)
        self._report(_PROGRESS_ROUTE, "Fetching route...")

        self._enter(RunState.SAMPLING)
        if len(route.polyline) < 2:
            # Single endpoint: one sample at the location, no interpolation
            samples = [SampledPoint(point=route.polyline[0], distance_m=0.0)]
        else:
            samples = sample_by_count(route.polyline, self.config.sample_count)
        self._report(
            _PROGRESS_SAMPLED, f"Sampling {len(samples)} point(s) along route..."
        )
        logger.info(
            "Coverage run %s -> %s (%s): %d sample(s) over %.0f m",
            start,
            end,
            profile,
            len(samples),
            route.total_distance_m,
        )

        self._enter(RunState.RESOLVING_COVERAGE)
        results = await self._resolve_samples(samples, start, end)

        return CoverageRun(
            start=start,
            end=end,
            profile=profile,
            route=route,
            results=tuple(results),
            stats=self.tile_cache.stats,
            route_reused=reused,
        )

    # -----------------------------------------------------------------------
    # Coverage resolution
    # -----------------------------------------------------------------------
    async def resolve_coverage(
        self,
        samples: Sequence[SampledPoint],
        start_label: str | None = None,
        end_label: str | None = None,
    ) -> list[CoverageResult]:
        """Resolve coverage for already-sampled points, in index order.

        Raises:
            ProviderUnavailableError: the geodetic bridge cannot be loaded
            RuntimeError: a coverage run is in progress
        """
        self._ensure_not_running()
        await self.bridge.ensure_ready()
        self._partial = []
        return await self._resolve_samples(samples, start_label, end_label)

    async def _resolve_samples(
        self,
        samples: Sequence[SampledPoint],
        start_label: str | None,
        end_label: str | None,
    ) -> list[CoverageResult]:
        total = len(samples)
        batch_size = self.config.batch_size
        for i, sample in enumerate(samples):
            if i == 0:
                label = start_label
            elif i == total - 1:
                label = end_label
            else:
                label = None

            networks = await self._resolve_point(sample, index=i)
            self._partial.append(
                CoverageResult(sample=sample, networks=networks, label=label)
            )

            self._report(
                _PROGRESS_SAMPLED + (i / total) * _PROGRESS_COVERAGE_SPAN,
                f"Analyzing coverage... {i + 1}/{total} samples",
            )
            if i < total - 1 and (i + 1) % batch_size == 0:
                await self._sleep(self.config.batch_delay_s)

        return list(self._partial)

    async def coverage_at(self, point: GeoPoint) -> dict[Operator, NetworkCoverageResult]:
        """Per-operator coverage at a single location.

        Raises:
            RuntimeError: a coverage run is in progress
        """
        self._ensure_not_running()
        await self.bridge.ensure_ready()
        return await self._resolve_point(SampledPoint(point=point, distance_m=0.0))

    async def _resolve_point(
        self, sample: SampledPoint, index: int = 0
    ) -> dict[Operator, NetworkCoverageResult]:
        operators = self.config.operators
        try:
            located = self._locate(sample.point)
        except CoverageError as e:
            logger.warning(
                "Sample %d (%.5f, %.5f): cannot locate tile: %s",
                index,
                sample.latitude,
                sample.longitude,
                e,
            )
            return {op: NetworkCoverageResult.failed(op, str(e)) for op in operators}

        results = await asyncio.gather(
            *(self._resolve_operator(op, located, index) for op in operators)
        )
        return dict(zip(operators, results))

    async def _resolve_operator(
        self, operator: Operator, located: TilePixel, index: int
    ) -> NetworkCoverageResult:
        tile = located.tile
        try:
            data = await self.tile_cache.fetch(operator, tile.x, tile.y, tile.zoom)
            color, level = extract_and_classify(
                self.raster_sampler,
                data,
                located.pixel,
                self.config.palette,
                self.config.color_tolerance,
            )
        except CoverageError as e:
            logger.warning(
                "Sample %d: %s coverage unavailable: %s", index, operator.display_name, e
            )
            return NetworkCoverageResult.failed(operator, str(e))
        return NetworkCoverageResult.classified(operator, level, color.hex)

    def _locate(self, point: GeoPoint) -> TilePixel:
        projected = self.bridge.to_projected(point.latitude, point.longitude)
        return self.grid.locate(projected)

    # -----------------------------------------------------------------------
    # Overlay support
    # -----------------------------------------------------------------------
    async def tile_info(self, point: GeoPoint, operator: Operator) -> TileInfo:
        """Tile index, URL and WGS84 bounds of the tile under a point.

        Raises:
            GeodeticRangeError: the point does not project to a finite coordinate
        """
        await self.bridge.ensure_ready()
        tile = self._locate(point).tile
        return TileInfo(
            tile=tile,
            url=self.tile_cache.tile_url(operator, tile.x, tile.y, tile.zoom),
            bounds=self.grid.tile_bounds_geographic(tile, self.bridge),
        )

    # -----------------------------------------------------------------------
    # Remembered query
    # -----------------------------------------------------------------------
    async def _remember_query(self, start: str, end: str, profile: str) -> None:
        if self.settings_store is None:
            return
        try:
            await self.settings_store.set_setting(SETTING_ROUTE_START, start)
            await self.settings_store.set_setting(SETTING_ROUTE_END, end)
            await self.settings_store.set_setting(SETTING_ROUTE_PROFILE, profile)
        except CacheError as e:
            logger.warning("Could not save last route settings: %s", e)

    async def last_query(self) -> tuple[str, str, str] | None:
        """(start, end, profile) of the last successful run, if saved."""
        if self.settings_store is None:
            return None
        try:
            start = await self.settings_store.get_setting(SETTING_ROUTE_START)
            end = await self.settings_store.get_setting(SETTING_ROUTE_END)
            profile = await self.settings_store.get_setting(SETTING_ROUTE_PROFILE)
        except CacheError as e:
            logger.warning("Could not read last route settings: %s", e)
            return None
        if start is None or end is None:
            return None
        return (start, end, profile or DEFAULT_PROFILE)
