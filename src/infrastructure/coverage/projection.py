"""pyproj adapter for the GeodeticBridge port.

Converts between WGS84 (EPSG:4326) and the British National Grid
(EPSG:27700). Transformers are built lazily off the event loop because PROJ
reads its database (and possibly transformation grids) on construction.

NaN-safe: NaN or non-finite input, and PROJ's inf for out-of-domain points,
are returned as NaN instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass

from pyproj import Transformer
from pyproj.exceptions import CRSError, ProjError

from domain.coverage.errors import ProviderUnavailableError
from domain.coverage.value_objects import ProjectedPoint

from .lifecycle import DEFAULT_LOAD_TIMEOUT_S, LazyProvider, ProviderState

logger = logging.getLogger(__name__)

GEOGRAPHIC_CRS = "EPSG:4326"
BNG_CRS = "EPSG:27700"

_NAN = float("nan")


@dataclass(frozen=True)
class _Transformers:
    forward: Transformer  # geographic -> projected
    inverse: Transformer  # projected -> geographic


class PyprojGeodeticBridge:
    """GeodeticBridge backed by pyproj.

    Parameters
    ----------
    projected_crs: str
        Target planar CRS (default British National Grid).
    timeout_s: float
        Upper bound for building the transformation pipeline.
    """

    def __init__(
        self,
        projected_crs: str = BNG_CRS,
        *,
        timeout_s: float = DEFAULT_LOAD_TIMEOUT_S,
    ) -> None:
        self.projected_crs = projected_crs
        self._provider: LazyProvider[_Transformers] = LazyProvider(
            f"PROJ pipeline {GEOGRAPHIC_CRS}<->{projected_crs}",
            self._load,
            timeout_s=timeout_s,
        )

    @property
    def state(self) -> ProviderState:
        return self._provider.state

    async def _load(self) -> _Transformers:
        return await asyncio.to_thread(self._build)

    def _build(self) -> _Transformers:
        try:
            # always_xy: (lon, lat) and (easting, northing) axis order
            forward = Transformer.from_crs(
                GEOGRAPHIC_CRS, self.projected_crs, always_xy=True
            )
            inverse = Transformer.from_crs(
                self.projected_crs, GEOGRAPHIC_CRS, always_xy=True
            )
        except (CRSError, ProjError) as e:
            raise ProviderUnavailableError(
                f"Cannot build transformation to {self.projected_crs}: {e}"
            ) from e
        logger.debug("Built PROJ transformers for %s", self.projected_crs)
        return _Transformers(forward=forward, inverse=inverse)

    async def ensure_ready(self) -> None:
        await self._provider.get()

    def to_projected(self, latitude: float, longitude: float) -> ProjectedPoint:
        """WGS84 degrees -> projected metres (NaN on failure).

        Raises:
            ProviderUnavailableError: ensure_ready() has not completed
        """
        transformers = self._provider.get_nowait()
        if not (math.isfinite(latitude) and math.isfinite(longitude)):
            return ProjectedPoint(easting=_NAN, northing=_NAN)
        try:
            easting, northing = transformers.forward.transform(longitude, latitude)
        except ProjError as e:
            logger.debug("Projection failed for (%s, %s): %s", latitude, longitude, e)
            return ProjectedPoint(easting=_NAN, northing=_NAN)
        return ProjectedPoint(
            easting=_finite_or_nan(easting), northing=_finite_or_nan(northing)
        )

    def to_geographic(self, easting: float, northing: float) -> tuple[float, float]:
        """Projected metres -> (latitude, longitude) degrees (NaN on failure)."""
        transformers = self._provider.get_nowait()
        if not (math.isfinite(easting) and math.isfinite(northing)):
            return (_NAN, _NAN)
        try:
            longitude, latitude = transformers.inverse.transform(easting, northing)
        except ProjError as e:
            logger.debug(
                "Inverse projection failed for (%s, %s): %s", easting, northing, e
            )
            return (_NAN, _NAN)
        return (_finite_or_nan(latitude), _finite_or_nan(longitude))


def _finite_or_nan(value: float) -> float:
    value = float(value)
    return value if math.isfinite(value) else _NAN
