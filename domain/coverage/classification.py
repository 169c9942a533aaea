"""Coverage Bounded Context - Pixel Colour Classification.

Maps a tile pixel colour onto a discrete coverage level by nearest-colour
matching against the Ofcom palette, within a Euclidean RGB tolerance.
Decoding is delegated to a RasterSampler port.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping

from domain.coverage.config import CANONICAL_PALETTE, COLOR_TOLERANCE
from domain.coverage.ports import RasterSampler
from domain.coverage.value_objects import CoverageLevel, PixelOffset, RgbaColor

_HEX_PATTERN = re.compile(r"^#?([0-9a-f]{2})([0-9a-f]{2})([0-9a-f]{2})$", re.IGNORECASE)


def rgb_to_hex(r: int, g: int, b: int) -> str:
    """Lower-case '#rrggbb'."""
    return f"#{r:02x}{g:02x}{b:02x}"


def hex_to_rgb(value: str) -> tuple[int, int, int] | None:
    """Parse '#rrggbb' (leading '#' optional). None for malformed input.

    Three-digit shorthand is not accepted.
    """
    match = _HEX_PATTERN.match(value)
    if match is None:
        return None
    r, g, b = (int(part, 16) for part in match.groups())
    return (r, g, b)


def color_distance(c1: tuple[int, int, int], c2: tuple[int, int, int]) -> float:
    """Euclidean distance in RGB space."""
    return math.sqrt(sum((a - b) ** 2 for a, b in zip(c1, c2)))


def classify_color(
    hex_color: str,
    palette: Mapping[CoverageLevel, str] = CANONICAL_PALETTE,
    tolerance: float = COLOR_TOLERANCE,
) -> CoverageLevel | None:
    """Nearest palette level within tolerance, or None (unknown).

    On an exact distance tie the entry met first in palette order wins.
    """
    rgb = hex_to_rgb(hex_color)
    if rgb is None:
        return None

    best: CoverageLevel | None = None
    best_distance = math.inf
    for level, ref_hex in palette.items():
        ref = hex_to_rgb(ref_hex)
        if ref is None:
            continue
        distance = color_distance(rgb, ref)
        # Strict < keeps the first-encountered entry on ties
        if distance <= tolerance and distance < best_distance:
            best, best_distance = level, distance
    return best


def extract_and_classify(
    sampler: RasterSampler,
    tile_data: bytes,
    offset: PixelOffset,
    palette: Mapping[CoverageLevel, str] = CANONICAL_PALETTE,
    tolerance: float = COLOR_TOLERANCE,
) -> tuple[RgbaColor, CoverageLevel | None]:
    """Read the pixel at offset and classify its colour."""
    color = sampler.read_pixel(tile_data, offset.x, offset.y)
    return color, classify_color(color.hex, palette, tolerance)
