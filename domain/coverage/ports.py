"""Domain Ports for the coverage context.

Defines interfaces (Protocols) that infrastructure adapters must implement.
No concrete I/O here.
"""

from __future__ import annotations

from typing import Protocol

from .value_objects import (
    GeoPoint,
    ProjectedPoint,
    RgbaColor,
    RouteResult,
    TileCacheEntry,
)


class GeodeticBridge(Protocol):
    """WGS84 <-> projected-grid conversion.

    Implementations must be NaN-safe: NaN in, NaN out, never an exception.
    """

    async def ensure_ready(self) -> None:
        """Load the underlying geodesy capability (idempotent)."""
        ...

    def to_projected(self, latitude: float, longitude: float) -> ProjectedPoint:
        ...

    def to_geographic(self, easting: float, northing: float) -> tuple[float, float]:
        """Return (latitude, longitude); NaN components on failure."""
        ...


class RasterSampler(Protocol):
    """Decode image bytes and read a single pixel."""

    def read_pixel(self, data: bytes, x: int, y: int) -> RgbaColor:
        """Read pixel (x, y), clamped into the image bounds."""
        ...


class TileStore(Protocol):
    """Versioned key/value store with two collections: tiles and settings.

    Implementations raise CacheError when the backing store is unavailable.
    """

    async def get_tile(self, key: str) -> bytes | None:
        ...

    async def put_tile(self, entry: TileCacheEntry) -> None:
        ...

    async def count_tiles(self) -> int:
        ...

    async def clear_tiles(self) -> None:
        ...

    async def get_setting(self, key: str) -> str | None:
        ...

    async def set_setting(self, key: str, value: str) -> None:
        ...


class Geocoder(Protocol):
    """Resolve an address or postcode to a coordinate."""

    async def resolve(self, query: str) -> GeoPoint:
        """Raises LocationNotFoundError when the query cannot be resolved."""
        ...


class Router(Protocol):
    """Compute a travel route between two coordinates."""

    async def route(
        self, origin: GeoPoint, destination: GeoPoint, profile: str
    ) -> RouteResult:
        """Raises RouteNotFoundError / NetworkError on failure."""
        ...
