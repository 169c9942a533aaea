"""Shared test utilities for building tile images.

These utilities are used by:
- tests/conftest.py (tile_png fixture)
- tests/gis/test_raster_sampler.py
- tests/application/test_coverage_sampling.py
"""

from __future__ import annotations

from collections.abc import Mapping

import numpy as np
from affine import Affine
from rasterio.io import MemoryFile

TILE_SIZE = 256


def encode_png(
    array: np.ndarray, colormap: Mapping[int, tuple[int, int, int, int]] | None = None
) -> bytes:
    """Encode a (bands, rows, cols) uint8 array as PNG bytes.

    Args:
        array: Band-first pixel array (1 to 4 bands)
        colormap: Optional palette for band 1 (makes a paletted PNG)

    Returns:
        PNG file contents
    """
    count, height, width = array.shape
    with MemoryFile(ext=".png") as memfile:
        with memfile.open(
            driver="PNG",
            width=width,
            height=height,
            count=count,
            dtype="uint8",
            transform=Affine.identity(),
        ) as dst:
            dst.write(array.astype(np.uint8))
            if colormap is not None:
                dst.write_colormap(1, colormap)
        memfile.seek(0)
        return memfile.read()


def solid_rgba(hex_color: str, size: int = TILE_SIZE, alpha: int = 255) -> np.ndarray:
    """(4, size, size) uint8 array filled with one colour."""
    value = hex_color.lstrip("#")
    r, g, b = (int(value[i : i + 2], 16) for i in (0, 2, 4))
    array = np.empty((4, size, size), dtype=np.uint8)
    array[0], array[1], array[2], array[3] = r, g, b, alpha
    return array
