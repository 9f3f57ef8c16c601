"""Agent-related data models."""

from dataclasses import dataclass, field
from enum import Enum


class AgentStatus(str, Enum):
    """Runtime state of an agent."""

    UNINITIALIZED = "uninitialized"
    IDLE = "idle"
    BUSY = "busy"
    ERROR = "error"
    STOPPED = "stopped"


@dataclass(frozen=True)
class AgentDescriptor:
    """Identity and capability set of an agent."""

    id: str
    name: str
    type: str
    capabilities: frozenset[str] = field(default_factory=frozenset)

    def can(self, action: str) -> bool:
        return action in self.capabilities


@dataclass
class AgentMetrics:
    """Per-agent task counters."""

    tasks_processed: int = 0
    tasks_succeeded: int = 0
    tasks_failed: int = 0
    average_task_time: float = 0.0  # seconds
    last_task_time: float | None = None

    def record(self, duration: float, succeeded: bool) -> None:
        self.tasks_processed += 1
        if succeeded:
            self.tasks_succeeded += 1
        else:
            self.tasks_failed += 1
        self.last_task_time = duration
        # moving average
        n = self.tasks_processed
        self.average_task_time = (self.average_task_time * (n - 1) + duration) / n
