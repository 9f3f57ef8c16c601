"""Tracker implementation for recording task lifecycle events."""

import uuid
from datetime import datetime, timezone
from typing import Protocol

from ..logging_config import get_logger
from ..models import TaskEvent
from ..storage import IStorage

logger = get_logger(__name__)


class ITracker(Protocol):
    """Audit trail of task lifecycle changes."""

    async def track(
        self,
        task_id: str,
        event_type: str,
        details: dict | None = None,
        status_from: str | None = None,
        status_to: str | None = None,
    ) -> None:
        """Create TaskEvent and save to Storage."""
        ...

    async def get_events(
        self, task_id: str | None = None, limit: int = 100
    ) -> list[TaskEvent]:
        """Recorded events, newest first."""
        ...


class Tracker:
    """Writes TaskEvents to Storage."""

    def __init__(self, storage: IStorage):
        self._storage = storage

    async def track(
        self,
        task_id: str,
        event_type: str,
        details: dict | None = None,
        status_from: str | None = None,
        status_to: str | None = None,
    ) -> None:
        """Create TaskEvent and save to Storage."""
        event = TaskEvent(
            id=str(uuid.uuid4()),
            task_id=task_id,
            event_type=event_type,
            details=details or {},
            timestamp=datetime.now(timezone.utc),
            status_from=status_from,
            status_to=status_to,
        )
        await self._storage.save_task_event(event)
        logger.debug("Task %s: %s", task_id, event_type)

    async def get_events(
        self, task_id: str | None = None, limit: int = 100
    ) -> list[TaskEvent]:
        return await self._storage.get_task_events(task_id=task_id, limit=limit)
