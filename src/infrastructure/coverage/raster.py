"""rasterio adapter for the RasterSampler port.

Decodes tile image bytes (PNG) in memory via rasterio.MemoryFile and reads a
single pixel through a 1x1 window. Band layouts handled:

- 1 band paletted: colormap lookup
- 1 band grey, 2 bands grey+alpha
- 3 bands RGB, 4+ bands RGBA
"""

from __future__ import annotations

import logging
import warnings

import rasterio
from rasterio.enums import ColorInterp
from rasterio.errors import NotGeoreferencedWarning
from rasterio.io import MemoryFile
from rasterio.windows import Window

from domain.coverage.errors import TileDecodeError
from domain.coverage.value_objects import RgbaColor

logger = logging.getLogger(__name__)

_OPAQUE = 255


class RasterioPixelSampler:
    """Read one pixel from encoded image bytes."""

    def read_pixel(self, data: bytes, x: int, y: int) -> RgbaColor:
        """Return the colour at (x, y), clamped into the image bounds.

        Raises:
            TileDecodeError: empty payload or bytes not decodable as a raster
        """
        if not data:
            raise TileDecodeError("Empty tile payload")

        try:
            # Tiles carry no georeferencing; rasterio warns on every open
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", NotGeoreferencedWarning)
                with MemoryFile(data) as memfile:
                    with memfile.open() as src:
                        if src.dtypes[0] != "uint8":
                            raise TileDecodeError(
                                f"Expected 8-bit tile, got {src.dtypes[0]}"
                            )
                        col = max(0, min(x, src.width - 1))
                        row = max(0, min(y, src.height - 1))
                        window = Window(col, row, 1, 1)
                        values = [int(v) for v in src.read(window=window)[:, 0, 0]]
                        is_paletted = (
                            src.count == 1
                            and src.colorinterp[0] == ColorInterp.palette
                        )
                        colormap = src.colormap(1) if is_paletted else None
        except rasterio.errors.RasterioError as e:
            raise TileDecodeError(f"Failed to load tile image: {e}") from e

        if colormap is not None:
            r, g, b, a = colormap.get(values[0], (0, 0, 0, 0))
            return RgbaColor(r=r, g=g, b=b, a=a)
        return _to_rgba(values)


def _to_rgba(values: list[int]) -> RgbaColor:
    if len(values) == 1:
        (v,) = values
        return RgbaColor(r=v, g=v, b=v, a=_OPAQUE)
    if len(values) == 2:
        v, a = values
        return RgbaColor(r=v, g=v, b=v, a=a)
    if len(values) == 3:
        r, g, b = values
        return RgbaColor(r=r, g=g, b=b, a=_OPAQUE)
    r, g, b, a = values[:4]
    return RgbaColor(r=r, g=g, b=b, a=a)
