"""Interfaces to systems outside the orchestrator core."""

from .budget import BudgetTracker, ModelPricing
from .records import (
    InMemoryRecordService,
    InMemorySchemaSource,
    IRecordService,
    ISchemaSource,
)
from .sandbox import ISandbox, SandboxHandle, SandboxSpec, parse_memory_spec
from .task_runner import (
    AnthropicTaskRunner,
    ITaskRunner,
    TaskRunnerResponse,
    is_retryable_error,
)
from .vcs import GitVersionControl, IVersionControl, RepoStatus, VersionControlError

__all__ = [
    "AnthropicTaskRunner",
    "BudgetTracker",
    "GitVersionControl",
    "IRecordService",
    "ISandbox",
    "ISchemaSource",
    "ITaskRunner",
    "IVersionControl",
    "InMemoryRecordService",
    "InMemorySchemaSource",
    "ModelPricing",
    "RepoStatus",
    "SandboxHandle",
    "SandboxSpec",
    "TaskRunnerResponse",
    "VersionControlError",
    "is_retryable_error",
    "parse_memory_spec",
]
