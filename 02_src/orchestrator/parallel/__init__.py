"""Parallel execution coordinator."""

from .coordinator import (
    FailedSubtask,
    Outcome,
    ParallelExecutionCoordinator,
    ParallelResults,
    SubtaskContext,
    SubtaskFailed,
    SubtaskResult,
    SubtaskSpec,
    analyze_results,
    settle,
)

__all__ = [
    "FailedSubtask",
    "Outcome",
    "ParallelExecutionCoordinator",
    "ParallelResults",
    "SubtaskContext",
    "SubtaskFailed",
    "SubtaskResult",
    "SubtaskSpec",
    "analyze_results",
    "settle",
]
