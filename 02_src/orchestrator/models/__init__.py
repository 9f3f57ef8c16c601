"""Core data models for the orchestrator."""

from .agents import AgentDescriptor, AgentMetrics, AgentStatus
from .locks import Lock
from .messages import DeliveryMode, Message, MessageLogEntry, PublishOutcome
from .records import FieldSchema, TableSchema, ValidationFailed, ValidationResult
from .tasks import Progress, SubtaskState, TaskEvent, TaskState, TaskStatus, utc_now
from .workflows import Step, StepError, WorkflowDefinition, WorkflowRun

__all__ = [
    # Messages
    "DeliveryMode",
    "Message",
    "MessageLogEntry",
    "PublishOutcome",
    # Agents
    "AgentDescriptor",
    "AgentMetrics",
    "AgentStatus",
    # Locks
    "Lock",
    # Records
    "FieldSchema",
    "TableSchema",
    "ValidationFailed",
    "ValidationResult",
    # Workflows
    "Step",
    "StepError",
    "WorkflowDefinition",
    "WorkflowRun",
    # Tasks
    "Progress",
    "SubtaskState",
    "TaskEvent",
    "TaskState",
    "TaskStatus",
    "utc_now",
]
