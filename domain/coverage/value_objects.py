"""Coverage Bounded Context - Value Objects.

Immutable data structures for tile addressing, route samples and per-operator
coverage results. All validation occurs at construction time via Pydantic.
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Geographic / projected coordinates
# ---------------------------------------------------------------------------
class GeoPoint(BaseModel):
    """Geographic coordinate in WGS84 (Value Object).

    Invariants:
        GP-1: latitude in [-90, 90]
        GP-2: longitude in [-180, 180]
    """

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    model_config = ConfigDict(frozen=True)


class ProjectedPoint(BaseModel):
    """Planar coordinate in metres on the British National Grid.

    NaN is allowed and propagated: a failed projection yields NaN components
    rather than raising.
    """

    easting: float
    northing: float

    model_config = ConfigDict(frozen=True)

    def is_finite(self) -> bool:
        return math.isfinite(self.easting) and math.isfinite(self.northing)


class ProjectedBounds(BaseModel):
    """Tile extent in projected metres."""

    west: float
    south: float
    east: float
    north: float

    model_config = ConfigDict(frozen=True)

    def center(self) -> ProjectedPoint:
        return ProjectedPoint(
            easting=(self.west + self.east) / 2,
            northing=(self.south + self.north) / 2,
        )


class GeographicBounds(BaseModel):
    """Tile extent in WGS84 degrees (may carry NaN from a failed projection)."""

    west: float
    south: float
    east: float
    north: float

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Tile addressing
# ---------------------------------------------------------------------------
class TileIndex(BaseModel):
    """Tile column/row at a zoom level (TMS: row 0 at the southern edge)."""

    x: int
    y: int
    zoom: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class PixelOffset(BaseModel):
    """Pixel inside a tile; row 0 is the tile's north edge."""

    x: int = Field(ge=0)
    y: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class TilePixel(BaseModel):
    """A tile together with the pixel under a located point."""

    tile: TileIndex
    pixel: PixelOffset

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Route samples
# ---------------------------------------------------------------------------
class SampledPoint(BaseModel):
    """A point on a route and its cumulative distance from the route start."""

    point: GeoPoint
    distance_m: float = Field(ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def latitude(self) -> float:
        return self.point.latitude

    @property
    def longitude(self) -> float:
        return self.point.longitude


class RouteResult(BaseModel):
    """Output of a routing collaborator.

    native_result is opaque provider data kept for renderers (e.g. the raw
    directions payload); the core never reads it.
    """

    polyline: tuple[GeoPoint, ...] = Field(min_length=1)
    total_distance_m: float = Field(ge=0)
    native_result: Any = None

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Operators and coverage levels
# ---------------------------------------------------------------------------
class Operator(str, Enum):
    """UK mobile network operators, valued by their tile-layer id."""

    VODAFONE = "mno1"
    O2 = "mno2"
    EE = "mno3"
    THREE = "mno4"

    @property
    def display_name(self) -> str:
        return _OPERATOR_NAMES[self]

    @classmethod
    def from_display_name(cls, name: str) -> "Operator":
        try:
            return _OPERATORS_BY_NAME[name.casefold()]
        except KeyError:
            raise ValueError(f"Unknown operator name: {name!r}") from None


_OPERATOR_NAMES: dict[Operator, str] = {
    Operator.VODAFONE: "Vodafone",
    Operator.O2: "O2",
    Operator.EE: "EE",
    Operator.THREE: "Three",
}
_OPERATORS_BY_NAME: dict[str, Operator] = {
    name.casefold(): op for op, name in _OPERATOR_NAMES.items()
}


class CoverageLevel(IntEnum):
    """Ofcom coverage class, 0 (worst) to 4 (best)."""

    POOR_TO_NONE = 0
    VARIABLE_OUTDOOR = 1
    GOOD_OUTDOOR = 2
    GOOD_OUTDOOR_VARIABLE_IN_HOME = 3
    GOOD_OUTDOOR_AND_IN_HOME = 4

    @property
    def description(self) -> str:
        return COVERAGE_DESCRIPTIONS[self]


COVERAGE_DESCRIPTIONS: dict[CoverageLevel, str] = {
    CoverageLevel.GOOD_OUTDOOR_AND_IN_HOME: "Good outdoor and in-home",
    CoverageLevel.GOOD_OUTDOOR_VARIABLE_IN_HOME: "Good outdoor, variable in-home",
    CoverageLevel.GOOD_OUTDOOR: "Good outdoor",
    CoverageLevel.VARIABLE_OUTDOOR: "Variable outdoor",
    CoverageLevel.POOR_TO_NONE: "Poor to none outdoor",
}
UNKNOWN_DESCRIPTION = "Unknown"


def describe_level(level: CoverageLevel | None) -> str:
    """Return the canonical description, or "Unknown" for a palette miss."""
    return UNKNOWN_DESCRIPTION if level is None else level.description


class RgbaColor(BaseModel):
    """One decoded pixel."""

    r: int = Field(ge=0, le=255)
    g: int = Field(ge=0, le=255)
    b: int = Field(ge=0, le=255)
    a: int = Field(default=255, ge=0, le=255)

    model_config = ConfigDict(frozen=True)

    @property
    def hex(self) -> str:
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}"


# ---------------------------------------------------------------------------
# Coverage results
# ---------------------------------------------------------------------------
class NetworkCoverageResult(BaseModel):
    """Coverage for one operator at one sample.

    Invariants:
        NC-1: error is mutually exclusive with level/color
        NC-2: description is present iff error is absent
    A result with no error and level=None is an "unknown" palette miss.
    """

    operator: Operator
    level: CoverageLevel | None = None
    color: str | None = None
    description: str | None = None
    error: str | None = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_exclusive(self) -> "NetworkCoverageResult":
        if self.error is not None:
            if self.level is not None or self.color is not None:
                raise ValueError("error is mutually exclusive with level/color")
            if self.description is not None:
                raise ValueError("errored result must not carry a description")
        elif self.description is None:
            raise ValueError("classified result requires a description")
        return self

    @classmethod
    def classified(
        cls, operator: Operator, level: CoverageLevel | None, color: str
    ) -> "NetworkCoverageResult":
        return cls(
            operator=operator,
            level=level,
            color=color,
            description=describe_level(level),
        )

    @classmethod
    def failed(cls, operator: Operator, error: str) -> "NetworkCoverageResult":
        return cls(operator=operator, error=error)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def is_unknown(self) -> bool:
        return self.error is None and self.level is None


class CoverageResult(BaseModel):
    """All operators' coverage at one sampled point."""

    sample: SampledPoint
    networks: dict[Operator, NetworkCoverageResult]
    label: str | None = None  # Route endpoint annotation (e.g. postcode)

    model_config = ConfigDict(frozen=True)

    def level_for(self, operator: Operator) -> CoverageLevel | None:
        result = self.networks.get(operator)
        return None if result is None else result.level

    def has_errors(self) -> bool:
        return any(r.is_error for r in self.networks.values())


class TileInfo(BaseModel):
    """Where a point's tile lives, for overlay renderers."""

    tile: TileIndex
    url: str
    bounds: GeographicBounds

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Cache bookkeeping
# ---------------------------------------------------------------------------
class TileCacheEntry(BaseModel):
    """One tile image in the cache. Never mutated; replaced by a new version key."""

    key: str
    data: bytes
    size_bytes: int = Field(ge=0)
    written_at: datetime

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_size(self) -> "TileCacheEntry":
        if self.size_bytes != len(self.data):
            raise ValueError(
                f"size_bytes={self.size_bytes} does not match payload ({len(self.data)}B)"
            )
        return self


class CacheStats(BaseModel):
    """Read-only snapshot of fetch/hit counters."""

    tiles_fetched: int = Field(default=0, ge=0)
    tiles_from_cache: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def total_requests(self) -> int:
        return self.tiles_fetched + self.tiles_from_cache


class CoverageRun(BaseModel):
    """Terminal output of one orchestrator run."""

    start: str
    end: str
    profile: str
    route: RouteResult
    results: tuple[CoverageResult, ...]
    stats: CacheStats
    route_reused: bool = False

    model_config = ConfigDict(frozen=True)

    def distances(self) -> tuple[float, ...]:
        """Return cumulative distance values."""
        return tuple(r.sample.distance_m for r in self.results)

    def error_count(self) -> int:
        """Return number of (point, operator) pairs carrying an error."""
        return sum(
            1 for r in self.results for n in r.networks.values() if n.is_error
        )
