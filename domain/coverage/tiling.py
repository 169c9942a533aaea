"""Coverage Bounded Context - Tile Addressing.

Pure functions over a resolution pyramid converting projected BNG coordinates
to tile indices and in-tile pixel offsets, and tiles back to their extents.
NO I/O operations - geographic bounds delegate to an injected GeodeticBridge.

Addressing is TMS (tile row 0 at the southern edge) while raster row 0 of a
decoded tile is its north edge, hence the pixel Y inversion.
"""

from __future__ import annotations

import math

from affine import Affine

from domain.coverage.config import CoverageConfig
from domain.coverage.errors import GeodeticRangeError, NonFiniteCoordinateError
from domain.coverage.ports import GeodeticBridge
from domain.coverage.value_objects import (
    GeographicBounds,
    PixelOffset,
    ProjectedBounds,
    ProjectedPoint,
    TileIndex,
    TilePixel,
)


class TileGrid:
    """Tile address index for one resolution table and origin."""

    def __init__(self, config: CoverageConfig | None = None) -> None:
        self.config = config or CoverageConfig()

    # -----------------------------------------------------------------------
    # Resolution pyramid
    # -----------------------------------------------------------------------
    def _check_zoom(self, zoom: int) -> None:
        if not 0 <= zoom <= self.config.max_zoom:
            raise GeodeticRangeError(
                f"Zoom level must be between 0 and {self.config.max_zoom}, got {zoom}"
            )

    def resolution(self, zoom: int) -> float:
        """Metres per pixel at zoom."""
        self._check_zoom(zoom)
        return self.config.resolutions[zoom]

    def tile_span(self, zoom: int) -> float:
        """Ground size of one tile edge in metres."""
        return self.resolution(zoom) * self.config.tile_size

    # -----------------------------------------------------------------------
    # Projected -> tile / pixel
    # -----------------------------------------------------------------------
    def to_tile(self, projected: ProjectedPoint, zoom: int | None = None) -> TileIndex:
        """Tile containing a projected point.

        Floor division puts a point on a west/south edge in that tile and a
        point on an east/north edge in the neighbouring tile.

        Raises:
            GeodeticRangeError: zoom outside the resolution table
            NonFiniteCoordinateError: NaN/inf easting or northing
        """
        zoom = self.config.zoom if zoom is None else zoom
        span = self.tile_span(zoom)
        dx, dy = self._offsets(projected)
        return TileIndex(x=math.floor(dx / span), y=math.floor(dy / span), zoom=zoom)

    def to_pixel_offset(
        self, projected: ProjectedPoint, zoom: int | None = None
    ) -> PixelOffset:
        """Pixel under a projected point inside its tile (row 0 = north)."""
        zoom = self.config.zoom if zoom is None else zoom
        res = self.resolution(zoom)
        span = res * self.config.tile_size
        dx, dy = self._offsets(projected)
        # Python % is floored, so offsets stay in [0, span) even west/south of origin
        px = math.floor((dx % span) / res)
        py = (self.config.tile_size - 1) - math.floor((dy % span) / res)
        return PixelOffset(x=px, y=py)

    def locate(self, projected: ProjectedPoint, zoom: int | None = None) -> TilePixel:
        """Tile and pixel for a projected point in one call."""
        return TilePixel(
            tile=self.to_tile(projected, zoom),
            pixel=self.to_pixel_offset(projected, zoom),
        )

    def _offsets(self, projected: ProjectedPoint) -> tuple[float, float]:
        if not projected.is_finite():
            raise NonFiniteCoordinateError(
                f"Cannot address tile for non-finite coordinate "
                f"({projected.easting}, {projected.northing})"
            )
        return (
            projected.easting - self.config.origin_x,
            projected.northing - self.config.origin_y,
        )

    # -----------------------------------------------------------------------
    # Tile -> extent
    # -----------------------------------------------------------------------
    def tile_bounds(self, tile: TileIndex) -> ProjectedBounds:
        """Projected extent of a tile (exact inverse of to_tile for interior points)."""
        span = self.tile_span(tile.zoom)
        ox, oy = self.config.origin_x, self.config.origin_y
        return ProjectedBounds(
            west=tile.x * span + ox,
            south=tile.y * span + oy,
            east=(tile.x + 1) * span + ox,
            north=(tile.y + 1) * span + oy,
        )

    def tile_bounds_geographic(
        self, tile: TileIndex, bridge: GeodeticBridge
    ) -> GeographicBounds:
        """WGS84 extent from the projected SW and NE corners."""
        bounds = self.tile_bounds(tile)
        south, west = bridge.to_geographic(bounds.west, bounds.south)
        north, east = bridge.to_geographic(bounds.east, bounds.north)
        return GeographicBounds(west=west, south=south, east=east, north=north)

    def tile_transform(self, tile: TileIndex) -> Affine:
        """Affine mapping raster (col, row) to projected (easting, northing).

        Rows run north to south, matching the decoded tile image.
        """
        res = self.resolution(tile.zoom)
        bounds = self.tile_bounds(tile)
        return Affine(res, 0.0, bounds.west, 0.0, -res, bounds.north)

    def pixel_center(self, tile: TileIndex, pixel: PixelOffset) -> ProjectedPoint:
        """Projected centre of a pixel (inverse of to_pixel_offset)."""
        easting, northing = self.tile_transform(tile) * (pixel.x + 0.5, pixel.y + 0.5)
        return ProjectedPoint(easting=easting, northing=northing)
