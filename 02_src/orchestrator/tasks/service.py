"""Task submission and inspection for callers outside the worker."""

import asyncio
import os
import sys
import uuid
from pathlib import Path
from typing import Awaitable, Callable

from ..logging_config import get_logger
from ..models import Progress, SubtaskState, TaskState, TaskStatus
from ..tracker import ITracker
from .state_manager import TaskStateManager, estimate_eta

logger = get_logger(__name__)

# Directory holding the `orchestrator` package
SOURCE_ROOT = Path(__file__).resolve().parent.parent.parent

Launcher = Callable[[str], Awaitable[int]]


async def spawn_worker(task_id: str, db_path: str | Path | None = None) -> int:
    """Start `python -m orchestrator.worker <task_id>` detached; returns its pid.

    `db_path` is passed to the worker as DATABASE_URL so both processes share
    one task store.
    """
    env = dict(os.environ)
    if db_path is not None:
        env["DATABASE_URL"] = str(db_path)
    process = await asyncio.create_subprocess_exec(
        sys.executable,
        "-m",
        "orchestrator.worker",
        task_id,
        cwd=SOURCE_ROOT,
        env=env,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
        start_new_session=True,
    )
    return process.pid


class TaskService:
    """Submits background tasks and answers status queries.

    Cancellation is advisory: the task is marked `cancelled` and the worker
    stops at its next stage boundary; no signal is sent to the process.
    """

    def __init__(
        self,
        state_manager: TaskStateManager,
        tracker: ITracker | None = None,
        launcher: Launcher = spawn_worker,
    ):
        self._state = state_manager
        self._tracker = tracker
        self._launcher = launcher

    async def submit_task(self, prompt: str, options: dict | None = None) -> str:
        options = options or {}
        task_id = options.get("task_id") or f"task-{uuid.uuid4().hex[:12]}"
        task = TaskState(
            task_id=task_id,
            project=options.get("project", "default"),
            prompt=prompt,
            progress=Progress(percent=0.0, eta=estimate_eta(None, [])),
        )
        await self._state.save_task_state(task)
        if self._tracker:
            await self._tracker.track(
                task_id,
                "submitted",
                {"project": task.project},
                status_to=TaskStatus.RUNNING.value,
            )

        try:
            pid = await self._launcher(task_id)
        except Exception as e:
            logger.error("Could not start worker for %s: %s", task_id, e)
            await self._state.finalize_task(
                task_id, TaskStatus.FAILED, error=f"Worker failed to start: {e}"
            )
            raise

        await self._state.update_task_state(task_id, pid=pid)
        logger.info("Task %s submitted (pid %s)", task_id, pid)
        return task_id

    async def get_task_status(self, task_id: str) -> TaskState | None:
        return await self._state.load_task_state(task_id)

    async def list_running_tasks(self) -> list[TaskState]:
        """Running tasks, after reconciling any whose worker has died."""
        await self._state.sync_task_states()
        return await self._state.get_running_tasks()

    async def list_project_tasks(self, project: str) -> list[TaskState]:
        return await self._state.get_project_tasks(project)

    async def cancel_task(self, task_id: str) -> bool:
        """Mark a running task cancelled. False if it is unknown or finished."""
        cancelled = await self._state.finalize_task(
            task_id, TaskStatus.CANCELLED, error="Cancelled by user"
        )
        if cancelled:
            logger.info("Task %s cancelled", task_id)
        return cancelled

    async def get_subtasks(self, task_id: str) -> list[SubtaskState]:
        return await self._state.get_subtasks(task_id)

    async def sync(self) -> list[str]:
        return await self._state.sync_task_states()
