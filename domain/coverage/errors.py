"""Coverage Bounded Context - Error Hierarchy.

Custom exceptions for tile addressing, route sampling, tile retrieval and
coverage runs. A pixel with no palette match is an "unknown" level (None),
not an error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain.coverage.value_objects import Operator


class CoverageError(Exception):
    """Base error for coverage operations."""


class InputValidationError(CoverageError):
    """Caller input is malformed (postcode, profile, polyline, sampling args)."""


# ---------------------------------------------------------------------------
# Tile addressing
# ---------------------------------------------------------------------------
class GeodeticRangeError(CoverageError):
    """Zoom level is outside the supported resolution table."""


class NonFiniteCoordinateError(GeodeticRangeError):
    """Projected coordinate is NaN or infinite and cannot address a tile."""


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------
class NetworkError(CoverageError):
    """Geocoding, routing or tile transport failure.

    Attributes:
        operator: Operator whose tile was requested (tile fetches only)
        zoom: Zoom level of the tile (tile fetches only)
        tile_x: Tile column (tile fetches only)
        tile_y: Tile row (tile fetches only)
    """

    def __init__(
        self,
        message: str,
        *,
        operator: "Operator | None" = None,
        zoom: int | None = None,
        tile_x: int | None = None,
        tile_y: int | None = None,
    ) -> None:
        self.operator = operator
        self.zoom = zoom
        self.tile_x = tile_x
        self.tile_y = tile_y
        super().__init__(message)


class TileFetchError(NetworkError):
    """Tile GET failed (transport error or non-2xx status)."""

    def __init__(
        self, operator: "Operator", zoom: int, tile_x: int, tile_y: int, reason: str
    ) -> None:
        super().__init__(
            f"Failed to fetch tile {operator.value}/{zoom}/{tile_x}/{tile_y}: {reason}",
            operator=operator,
            zoom=zoom,
            tile_x=tile_x,
            tile_y=tile_y,
        )


class LocationNotFoundError(NetworkError):
    """Geocoder could not resolve the query to a coordinate."""


class RouteNotFoundError(NetworkError):
    """Router found no route between the endpoints."""


# ---------------------------------------------------------------------------
# Storage / decoding / providers
# ---------------------------------------------------------------------------
class CacheError(CoverageError):
    """Persistent tile store is unavailable (never user-facing)."""


class TileDecodeError(CoverageError):
    """Tile bytes are not a decodable raster image."""


class ProviderUnavailableError(CoverageError):
    """A lazily loaded collaborator failed to load or timed out."""


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------
class CoverageRunError(CoverageError):
    """Terminal failure of a coverage run.

    Attributes:
        phase: Name of the run state in which the failure occurred
    """

    def __init__(self, phase: str, message: str) -> None:
        self.phase = phase
        super().__init__(f"Coverage run failed during {phase}: {message}")
