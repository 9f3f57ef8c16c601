"""Task lifecycle: state store, background pipeline and service."""

from .pipeline import DEFAULT_STAGES, TaskCancelled, TaskPipeline
from .service import TaskService, spawn_worker
from .state_manager import (
    CANONICAL_PIPELINE,
    TaskStateManager,
    calculate_progress,
    estimate_eta,
    is_process_alive,
)

__all__ = [
    "CANONICAL_PIPELINE",
    "DEFAULT_STAGES",
    "TaskCancelled",
    "TaskPipeline",
    "TaskService",
    "TaskStateManager",
    "calculate_progress",
    "estimate_eta",
    "is_process_alive",
    "spawn_worker",
]
