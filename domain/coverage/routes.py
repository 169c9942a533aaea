"""Coverage Bounded Context - Route Sampling.

Pure domain logic for sampling points along a travel polyline.
Distances are great-circle on a spherical Earth (pyproj.Geod); positions between
vertices are linear in latitude/longitude, which is accurate enough for the
short segments routing providers return.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from pyproj import Geod

from domain.coverage.errors import InputValidationError
from domain.coverage.value_objects import GeoPoint, SampledPoint

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
EARTH_RADIUS_M = 6_371_000.0  # Mean Earth radius
DEFAULT_INTERVAL_M = 500.0

# Sphere of radius EARTH_RADIUS_M: geodesics are great circles
_geod = Geod(a=EARTH_RADIUS_M, b=EARTH_RADIUS_M)


# ---------------------------------------------------------------------------
# Great-circle distance
# ---------------------------------------------------------------------------
def great_circle_distance(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in metres.

    Symmetric; exactly 0.0 for identical points.
    """
    if a == b:
        return 0.0
    _, _, distance = _geod.inv(a.longitude, a.latitude, b.longitude, b.latitude)
    return float(abs(distance))


def total_distance(polyline: Sequence[GeoPoint]) -> float:
    """Sum of consecutive great-circle distances in metres."""
    return sum(
        great_circle_distance(polyline[i], polyline[i + 1])
        for i in range(len(polyline) - 1)
    )


def _interpolate(start: GeoPoint, end: GeoPoint, fraction: float) -> GeoPoint:
    return GeoPoint(
        latitude=start.latitude + (end.latitude - start.latitude) * fraction,
        longitude=start.longitude + (end.longitude - start.longitude) * fraction,
    )


def _require_route(polyline: Sequence[GeoPoint] | None) -> Sequence[GeoPoint]:
    if not polyline or len(polyline) < 2:
        raise InputValidationError("Route must have at least 2 points")
    return polyline


# ---------------------------------------------------------------------------
# Fixed-interval sampling
# ---------------------------------------------------------------------------
def sample_at_interval(
    polyline: Sequence[GeoPoint], interval_m: float = DEFAULT_INTERVAL_M
) -> list[SampledPoint]:
    """Sample a route roughly every interval_m metres.

    Each non-degenerate segment is split into ceil(length / interval_m) equal
    steps, so every vertex is itself emitted and spacing never exceeds
    interval_m.

    Raises:
        InputValidationError: fewer than 2 points, or interval_m <= 0
    """
    polyline = _require_route(polyline)
    if not interval_m > 0:
        raise InputValidationError(f"interval_m must be positive, got {interval_m}")

    points = [SampledPoint(point=polyline[0], distance_m=0.0)]
    along = 0.0

    for start, end in zip(polyline[:-1], polyline[1:]):
        segment = great_circle_distance(start, end)
        if segment == 0:
            continue

        steps = math.ceil(segment / interval_m)
        # j=0 is the previous segment's end (already emitted)
        for j in range(1, steps + 1):
            fraction = j / steps
            points.append(
                SampledPoint(
                    point=_interpolate(start, end, fraction),
                    distance_m=along + segment * fraction,
                )
            )
        along += segment

    return points


# ---------------------------------------------------------------------------
# Fixed-count sampling
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class _Segment:
    start: GeoPoint
    end: GeoPoint
    start_m: float
    end_m: float

    @property
    def length_m(self) -> float:
        return self.end_m - self.start_m


def _build_segments(polyline: Sequence[GeoPoint]) -> list[_Segment]:
    segments: list[_Segment] = []
    cumulative = 0.0
    for start, end in zip(polyline[:-1], polyline[1:]):
        length = great_circle_distance(start, end)
        if length > 0:
            segments.append(_Segment(start, end, cumulative, cumulative + length))
            cumulative += length
    return segments


def sample_by_count(
    polyline: Sequence[GeoPoint], target_count: int
) -> list[SampledPoint]:
    """Sample exactly target_count points evenly spaced by distance.

    The first sample is the route start and the last the route end. A
    degenerate route (zero total length) yields a single sample at the start.

    Raises:
        InputValidationError: fewer than 2 points, or target_count < 1
    """
    polyline = _require_route(polyline)
    if target_count < 1:
        raise InputValidationError(
            f"target_count must be at least 1, got {target_count}"
        )

    segments = _build_segments(polyline)
    if not segments:
        return [SampledPoint(point=polyline[0], distance_m=0.0)]

    total = segments[-1].end_m
    if target_count == 1:
        return [SampledPoint(point=segments[0].start, distance_m=0.0)]

    points: list[SampledPoint] = []
    seg_idx = 0
    for i in range(target_count):
        if i == target_count - 1:
            # Pin the final sample to the route end exactly
            points.append(SampledPoint(point=segments[-1].end, distance_m=total))
            continue

        target = (i / (target_count - 1)) * total
        # Targets increase monotonically, so the segment cursor only advances
        while seg_idx < len(segments) - 1 and target > segments[seg_idx].end_m:
            seg_idx += 1
        segment = segments[seg_idx]
        fraction = (target - segment.start_m) / segment.length_m
        fraction = min(1.0, max(0.0, fraction))
        points.append(
            SampledPoint(
                point=_interpolate(segment.start, segment.end, fraction),
                distance_m=target,
            )
        )

    return points
