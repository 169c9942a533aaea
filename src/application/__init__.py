"""Application services sequencing the coverage domain over its adapters."""

from .coverage_sampling import CoverageSamplingOrchestrator, RunState

__all__ = ["CoverageSamplingOrchestrator", "RunState"]
