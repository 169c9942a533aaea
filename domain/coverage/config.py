"""Coverage Bounded Context - Configuration.

A single injectable configuration object replaces module-level constants.
Defaults are the canonical Ofcom BNG tile parameters:

- Grid origin (0, 0) (standard BNG false origin)
- Default zoom 8
- Resolution table derived from 2867.2 m/px at zoom 0, halving per level,
  which gives 2.8 m/px at zoom 10 (~717 m tile span, verified against ground
  distance on reference tiles)
"""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field, model_validator

from domain.coverage.value_objects import CoverageLevel, Operator

# ---------------------------------------------------------------------------
# Canonical constants
# ---------------------------------------------------------------------------
BASE_RESOLUTION_M = 2867.2  # metres per pixel at zoom 0
MAX_ZOOM = 11
CANONICAL_RESOLUTIONS: tuple[float, ...] = tuple(
    BASE_RESOLUTION_M / 2**z for z in range(MAX_ZOOM + 1)
)
TILE_SIZE_PX = 256
STANDARD_ZOOM = 8
TILE_VERSION = "42"
COLOR_TOLERANCE = 10.0
ROUTE_SAMPLE_COUNT = 500
BATCH_SIZE = 5
BATCH_DELAY_S = 0.5

TILE_API_BASE = "https://ofcom.europa.uk.com/tiles"
TILE_LAYER_TEMPLATE = "gbof_{operator}_raster_bng2"

# Ofcom tile colour scheme (level -> hex); iteration order is the tie-break order
CANONICAL_PALETTE: dict[CoverageLevel, str] = {
    CoverageLevel.GOOD_OUTDOOR_AND_IN_HOME: "#7d2093",  # purple
    CoverageLevel.GOOD_OUTDOOR_VARIABLE_IN_HOME: "#cd7be4",  # light purple
    CoverageLevel.GOOD_OUTDOOR: "#0081b3",  # blue
    CoverageLevel.VARIABLE_OUTDOOR: "#83e5f6",  # cyan
    CoverageLevel.POOR_TO_NONE: "#d4d4d4",  # gray
}

# Relative tolerance for the resolution pyramid check
_PYRAMID_REL_TOL = 1e-9


class CoverageConfig(BaseModel):
    """Tile addressing, cache and orchestration parameters (injected everywhere).

    Invariants:
        CC-1: resolutions[z] == resolutions[0] / 2**z for every z
        CC-2: zoom indexes the resolution table
        CC-3: at least one operator
    """

    resolutions: tuple[float, ...] = CANONICAL_RESOLUTIONS
    origin_x: float = 0.0
    origin_y: float = 0.0
    tile_size: int = Field(default=TILE_SIZE_PX, gt=0)
    zoom: int = Field(default=STANDARD_ZOOM, ge=0)
    tile_version: str = TILE_VERSION
    color_tolerance: float = Field(default=COLOR_TOLERANCE, ge=0)
    palette: dict[CoverageLevel, str] = Field(
        default_factory=lambda: dict(CANONICAL_PALETTE)
    )
    sample_count: int = Field(default=ROUTE_SAMPLE_COUNT, ge=1)
    batch_size: int = Field(default=BATCH_SIZE, ge=1)
    batch_delay_s: float = Field(default=BATCH_DELAY_S, ge=0)
    tile_api_base: str = TILE_API_BASE
    tile_layer_template: str = TILE_LAYER_TEMPLATE
    operators: tuple[Operator, ...] = (
        Operator.EE,
        Operator.VODAFONE,
        Operator.O2,
        Operator.THREE,
    )
    http_timeout_s: float = Field(default=30.0, gt=0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_config(self) -> "CoverageConfig":
        if not self.resolutions:
            raise ValueError("Resolution table cannot be empty")
        base = self.resolutions[0]
        if base <= 0:
            raise ValueError(f"Base resolution must be positive: {base}")
        # CC-1: pyramid invariant
        for z, res in enumerate(self.resolutions):
            expected = base / 2**z
            if not math.isclose(res, expected, rel_tol=_PYRAMID_REL_TOL):
                raise ValueError(
                    f"Resolution at zoom {z} must be {expected}, got {res}"
                )
        # CC-2
        if self.zoom > self.max_zoom:
            raise ValueError(
                f"Default zoom {self.zoom} outside table (0..{self.max_zoom})"
            )
        # CC-3
        if not self.operators:
            raise ValueError("At least one operator is required")
        return self

    @property
    def max_zoom(self) -> int:
        return len(self.resolutions) - 1
