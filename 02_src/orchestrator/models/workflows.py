"""Workflow data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class Step:
    """One named unit of a workflow bound to an agent action."""

    name: str
    action: str
    payload: dict = field(default_factory=dict)
    optional: bool = False


@dataclass
class WorkflowDefinition:
    """Ordered list of steps."""

    name: str
    steps: list[Step]
    description: str = ""


@dataclass
class StepError:
    """Failure recorded for a step during a run."""

    step: str
    error: str
    optional: bool


@dataclass
class WorkflowRun:
    """State and output of one workflow execution."""

    workflow_id: str
    workflow_name: str
    params: dict
    results: dict[str, Any] = field(default_factory=dict)
    errors: list[StepError] = field(default_factory=list)
    success: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def duration(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "params": self.params,
            "results": self.results,
            "errors": [
                {"step": e.step, "error": e.error, "optional": e.optional}
                for e in self.errors
            ],
            "success": self.success,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration": self.duration,
        }
