"""Coverage Bounded Context - Run Summaries.

Aggregates an ordered result set into per-operator statistics and
same-level stretches for chart/table renderers. Missing, unknown and errored
entries count as level 0 (no usable signal).
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from domain.coverage.value_objects import CoverageLevel, CoverageResult, Operator


class NetworkSummary(BaseModel):
    """Cumulative "or better" percentages (0-100, rounded) for one operator."""

    operator: Operator
    indoor_plus_pct: int  # level >= 4
    indoor_pct: int  # level >= 3
    outdoor_pct: int  # level >= 2
    variable_pct: int  # level >= 1
    poor_none_pct: int  # level == 0
    average_level: float = Field(ge=0, le=4)
    rank: int = Field(ge=1)

    model_config = ConfigDict(frozen=True)


class CoverageSegment(BaseModel):
    """A run of consecutive samples sharing one level."""

    level: CoverageLevel
    start_m: float
    end_m: float
    labels: tuple[str, ...] = ()
    width_pct: float

    model_config = ConfigDict(frozen=True)


def signal_level(result: CoverageResult, operator: Operator) -> int:
    """Level usable for aggregation (0 when missing, unknown or errored)."""
    network = result.networks.get(operator)
    if network is None or network.error is not None or network.level is None:
        return 0
    return int(network.level)


def _pct(count: int, total: int) -> int:
    return round(count / total * 100) if total else 0


def summarize_coverage(
    results: Sequence[CoverageResult], operators: Sequence[Operator]
) -> tuple[NetworkSummary, ...]:
    """Per-operator statistics ordered by rank (best average first).

    Operators with equal averages share a rank; the next distinct average
    takes its 1-based position.
    """
    rows: list[tuple[Operator, np.ndarray]] = [
        (op, np.array([signal_level(r, op) for r in results], dtype=np.int8))
        for op in operators
    ]
    averages = {
        op: float(levels.mean()) if levels.size else 0.0 for op, levels in rows
    }
    # Stable sort keeps caller order between equal averages
    ranked = sorted(rows, key=lambda row: -averages[row[0]])

    summaries: list[NetworkSummary] = []
    rank = 1
    for index, (op, levels) in enumerate(ranked):
        if index > 0 and averages[op] < averages[ranked[index - 1][0]]:
            rank = index + 1
        total = int(levels.size)
        summaries.append(
            NetworkSummary(
                operator=op,
                indoor_plus_pct=_pct(int(np.count_nonzero(levels >= 4)), total),
                indoor_pct=_pct(int(np.count_nonzero(levels >= 3)), total),
                outdoor_pct=_pct(int(np.count_nonzero(levels >= 2)), total),
                variable_pct=_pct(int(np.count_nonzero(levels >= 1)), total),
                poor_none_pct=_pct(int(np.count_nonzero(levels == 0)), total),
                average_level=averages[op],
                rank=rank,
            )
        )
    return tuple(summaries)


def coverage_segments(
    results: Sequence[CoverageResult], operator: Operator
) -> tuple[CoverageSegment, ...]:
    """Group consecutive samples with the same level into segments.

    Empty when there are no results or the route has zero length.
    """
    if not results:
        return ()
    total = results[-1].sample.distance_m
    if total == 0:
        return ()

    segments: list[CoverageSegment] = []
    current = signal_level(results[0], operator)
    start = 0.0
    labels: list[str] = [results[0].label] if results[0].label else []

    def close(end: float) -> None:
        segments.append(
            CoverageSegment(
                level=CoverageLevel(current),
                start_m=start,
                end_m=end,
                labels=tuple(dict.fromkeys(labels)),
                width_pct=(end - start) / total * 100,
            )
        )

    for result in results[1:]:
        level = signal_level(result, operator)
        distance = result.sample.distance_m
        if level != current:
            close(distance)
            current, start, labels = level, distance, []
        if result.label:
            labels.append(result.label)

    close(total)
    return tuple(segments)
