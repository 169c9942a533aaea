"""Root pytest configuration for all tests.

Shared fixtures:
- tile_png: encode synthetic tiles as real PNG bytes with rasterio
- bridge: a ready PyprojGeodeticBridge (built once per session)
- fake collaborators for geocoding, routing and pixel reads
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping

import pytest

from domain.coverage.errors import LocationNotFoundError, RouteNotFoundError
from domain.coverage.routes import total_distance
from domain.coverage.value_objects import GeoPoint, RgbaColor, RouteResult
from tests.conftest_utils import TILE_SIZE, encode_png, solid_rgba


# =============================================================================
# Tile images
# =============================================================================
@pytest.fixture
def tile_png() -> Callable[..., bytes]:
    """Factory: tile_png("#0081b3") -> 256x256 RGBA PNG of that colour."""

    def make(hex_color: str, size: int = TILE_SIZE, alpha: int = 255) -> bytes:
        return encode_png(solid_rgba(hex_color, size, alpha))

    return make


# =============================================================================
# Geodesy
# =============================================================================
@pytest.fixture(scope="session")
def bridge():
    """PyprojGeodeticBridge with its transformers already loaded."""
    from infrastructure.coverage.projection import PyprojGeodeticBridge

    instance = PyprojGeodeticBridge()
    asyncio.run(instance.ensure_ready())
    return instance


# =============================================================================
# Fake collaborators
# =============================================================================
class FakeGeocoder:
    """Geocoder returning fixed points; unknown queries raise LocationNotFoundError."""

    def __init__(self, points: Mapping[str, GeoPoint]) -> None:
        self.points = dict(points)
        self.calls: list[str] = []

    async def resolve(self, query: str) -> GeoPoint:
        self.calls.append(query)
        try:
            return self.points[query]
        except KeyError:
            raise LocationNotFoundError(f"Postcode not found: {query}") from None


class FakeRouter:
    """Router returning a straight two-vertex route (or failing)."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[GeoPoint, GeoPoint, str]] = []

    async def route(
        self, origin: GeoPoint, destination: GeoPoint, profile: str
    ) -> RouteResult:
        self.calls.append((origin, destination, profile))
        if self.fail:
            raise RouteNotFoundError("Route not found between these locations")
        return RouteResult(
            polyline=(origin, destination),
            total_distance_m=total_distance((origin, destination)),
        )


class FakeSampler:
    """RasterSampler that treats tile bytes as an ASCII hex colour."""

    def __init__(self) -> None:
        self.reads: list[tuple[bytes, int, int]] = []

    def read_pixel(self, data: bytes, x: int, y: int) -> RgbaColor:
        self.reads.append((data, x, y))
        value = data.decode().lstrip("#")
        return RgbaColor(
            r=int(value[0:2], 16), g=int(value[2:4], 16), b=int(value[4:6], 16)
        )


@pytest.fixture
def fake_geocoder() -> Callable[[Mapping[str, GeoPoint]], FakeGeocoder]:
    return FakeGeocoder


@pytest.fixture
def fake_router() -> Callable[..., FakeRouter]:
    return FakeRouter


@pytest.fixture
def fake_sampler() -> FakeSampler:
    return FakeSampler()
