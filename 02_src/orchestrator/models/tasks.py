"""Task lifecycle data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class TaskStatus(str, Enum):
    """Lifecycle status of a task or subtask."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    INTERRUPTED = "interrupted"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.RUNNING


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Progress:
    """Progress snapshot of a running task."""

    percent: float = 0.0
    eta: int | None = None  # seconds remaining


@dataclass
class TaskState:
    """Persistent state of one background task."""

    task_id: str
    status: TaskStatus = TaskStatus.RUNNING
    project: str = ""
    prompt: str = ""
    pid: int | None = None
    current_agent: str | None = None
    completed_agents: list[str] = field(default_factory=list)
    progress: Progress = field(default_factory=Progress)
    started_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None
    updated_at: datetime | None = None
    heartbeat_at: datetime | None = None
    error: str | None = None
    result: dict | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "status": self.status.value,
            "project": self.project,
            "prompt": self.prompt,
            "pid": self.pid,
            "current_agent": self.current_agent,
            "completed_agents": list(self.completed_agents),
            "progress": {"percent": self.progress.percent, "eta": self.progress.eta},
            "started_at": _to_iso(self.started_at),
            "completed_at": _to_iso(self.completed_at),
            "updated_at": _to_iso(self.updated_at),
            "heartbeat_at": _to_iso(self.heartbeat_at),
            "error": self.error,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskState":
        """Rebuild from a stored document. Raises KeyError/ValueError/TypeError if malformed."""
        progress = data.get("progress") or {}
        return cls(
            task_id=data["task_id"],
            status=TaskStatus(data["status"]),
            project=data.get("project", ""),
            prompt=data.get("prompt", ""),
            pid=data.get("pid"),
            current_agent=data.get("current_agent"),
            completed_agents=list(data.get("completed_agents") or []),
            progress=Progress(
                percent=progress.get("percent", 0.0), eta=progress.get("eta")
            ),
            started_at=_from_iso(data.get("started_at")) or utc_now(),
            completed_at=_from_iso(data.get("completed_at")),
            updated_at=_from_iso(data.get("updated_at")),
            heartbeat_at=_from_iso(data.get("heartbeat_at")),
            error=data.get("error"),
            result=data.get("result"),
        )


@dataclass
class SubtaskState:
    """Persistent state of one subtask; always belongs to a parent task."""

    parent_task_id: str
    subtask_id: str
    status: TaskStatus = TaskStatus.RUNNING
    role: str = ""
    description: str = ""
    branch: str | None = None
    started_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None
    cost: float = 0.0
    duration: float | None = None
    error: str | None = None
    result: dict | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "parent_task_id": self.parent_task_id,
            "subtask_id": self.subtask_id,
            "status": self.status.value,
            "role": self.role,
            "description": self.description,
            "branch": self.branch,
            "started_at": _to_iso(self.started_at),
            "completed_at": _to_iso(self.completed_at),
            "cost": self.cost,
            "duration": self.duration,
            "error": self.error,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SubtaskState":
        return cls(
            parent_task_id=data["parent_task_id"],
            subtask_id=data["subtask_id"],
            status=TaskStatus(data["status"]),
            role=data.get("role", ""),
            description=data.get("description", ""),
            branch=data.get("branch"),
            started_at=_from_iso(data.get("started_at")) or utc_now(),
            completed_at=_from_iso(data.get("completed_at")),
            cost=data.get("cost", 0.0),
            duration=data.get("duration"),
            error=data.get("error"),
            result=data.get("result"),
        )


@dataclass
class TaskEvent:
    """Audit record of a task lifecycle change."""

    id: str
    task_id: str
    event_type: str  # e.g. "submitted", "finalized", "interrupted"
    details: dict
    timestamp: datetime
    status_from: str | None = None
    status_to: str | None = None
