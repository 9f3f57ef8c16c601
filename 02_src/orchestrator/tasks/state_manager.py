"""Durable task/subtask state with liveness-based crash recovery."""

import asyncio
import dataclasses
import json
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Sequence

import psutil

from ..errors import InvalidTransition
from ..logging_config import get_logger
from ..models import Progress, SubtaskState, TaskState, TaskStatus, utc_now
from ..storage import IStorage
from ..tracker import ITracker

logger = get_logger(__name__)

CANONICAL_PIPELINE = ("architect", "coder", "reviewer", "tester")

STAGE_WEIGHTS = {"architect": 20, "coder": 50, "reviewer": 20, "tester": 10}

# Historical stage durations in seconds
STAGE_AVERAGE_SECONDS = {
    "architect": 30,
    "coder": 100,
    "reviewer": 20,
    "tester": 30,
    "security": 25,
}
DEFAULT_STAGE_SECONDS = 30

PROCESS_DIED_ERROR = "Process died (system reboot or crash)"

# Version compare-and-set retries per task write
MAX_WRITE_ATTEMPTS = 5

PidProbe = Callable[[int], Awaitable[bool]]


def is_process_alive(pid: int) -> bool:
    """Best-effort liveness check; PIDs can be reused by the OS."""
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Exists but owned by another user
        return True


async def probe_pid(pid: int) -> bool:
    return await asyncio.to_thread(is_process_alive, pid)


def calculate_progress(
    current_agent: str | None, completed_agents: Sequence[str] = ()
) -> float:
    """Percent complete; the current stage counts as half done."""
    total = sum(STAGE_WEIGHTS.get(agent, 0) for agent in dict.fromkeys(completed_agents))
    if current_agent and current_agent not in completed_agents:
        total += STAGE_WEIGHTS.get(current_agent, 0) / 2
    return float(min(total, 100))


def estimate_eta(
    current_agent: str | None,
    completed_agents: Sequence[str] = (),
    pipeline: Sequence[str] = CANONICAL_PIPELINE,
) -> int:
    """Seconds remaining: half the current stage plus every stage not yet reached."""
    remaining = 0.0
    if current_agent:
        remaining += STAGE_AVERAGE_SECONDS.get(current_agent, DEFAULT_STAGE_SECONDS) / 2
    for stage in pipeline:
        if stage not in completed_agents and stage != current_agent:
            remaining += STAGE_AVERAGE_SECONDS.get(stage, DEFAULT_STAGE_SECONDS)
    return round(remaining)


class TaskStateManager:
    """Persists TaskState/SubtaskState documents and reconciles orphaned tasks.

    Status changes are compare-and-set against the stored status, so a
    terminal status is written at most once even when the worker process
    and a liveness scan race.
    """

    def __init__(
        self,
        storage: IStorage,
        tracker: ITracker | None = None,
        pid_probe: PidProbe = probe_pid,
        heartbeat_grace: float | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._storage = storage
        self._tracker = tracker
        self._pid_probe = pid_probe
        self._heartbeat_grace = heartbeat_grace
        self._clock = clock

    # Tasks

    async def save_task_state(self, task: TaskState) -> None:
        await self._storage.save_task(
            task.task_id,
            task.status.value,
            task.project,
            task.started_at.isoformat(),
            json.dumps(task.to_dict(), default=str),
        )

    async def load_task_state(self, task_id: str) -> TaskState | None:
        """The stored task, or None if it is missing or unreadable."""
        raw = await self._storage.get_task(task_id)
        if raw is None:
            return None
        return self._decode_task(task_id, raw)

    async def update_task_state(self, task_id: str, **changes) -> TaskState | None:
        """Merge `changes` into the stored task and stamp `updated_at`.

        Returns None if the task does not exist. Raises InvalidTransition
        when asked to change the status of a terminal task.
        """
        changes.pop("updated_at", None)
        if "progress" in changes and isinstance(changes["progress"], dict):
            changes["progress"] = Progress(**changes["progress"])
        if "status" in changes:
            changes["status"] = TaskStatus(changes["status"])
        if "completed_agents" in changes:
            changes["completed_agents"] = list(dict.fromkeys(changes["completed_agents"]))

        for _ in range(MAX_WRITE_ATTEMPTS):
            loaded = await self._load_versioned(task_id)
            if loaded is None:
                return None
            current, version = loaded

            new_status = changes.get("status", current.status)
            if current.status.is_terminal and new_status != current.status:
                raise InvalidTransition(
                    f"Task {task_id} is {current.status.value}, cannot become {new_status.value}"
                )

            updated = dataclasses.replace(current, **changes, updated_at=self._clock())
            if await self._storage.update_task_if_version(
                task_id,
                version,
                updated.status.value,
                json.dumps(updated.to_dict(), default=str),
            ):
                return updated
            logger.debug("Concurrent update of task %s, retrying", task_id)

        raise InvalidTransition(f"Task {task_id} kept changing during update")

    async def delete_task_state(self, task_id: str) -> bool:
        deleted = await self._storage.delete_task(task_id)
        if deleted:
            logger.info("Task state deleted: %s", task_id)
        return deleted

    async def finalize_task(
        self,
        task_id: str,
        status: TaskStatus,
        error: str | None = None,
        result: dict | None = None,
    ) -> bool:
        """Move a running task to a terminal status.

        Returns False (and changes nothing) if the task is missing or was
        already finalized.
        """
        status = TaskStatus(status)
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")

        for _ in range(MAX_WRITE_ATTEMPTS):
            loaded = await self._load_versioned(task_id)
            if loaded is None:
                return False
            current, version = loaded
            if current.status.is_terminal:
                return False

            now = self._clock()
            progress = current.progress
            if status is TaskStatus.COMPLETED:
                progress = Progress(percent=100.0, eta=0)
            finalized = dataclasses.replace(
                current,
                status=status,
                completed_at=now,
                updated_at=now,
                error=error if error is not None else current.error,
                result=result if result is not None else current.result,
                progress=progress,
            )
            if await self._storage.update_task_if_version(
                task_id,
                version,
                status.value,
                json.dumps(finalized.to_dict(), default=str),
            ):
                break
            logger.debug("Concurrent update of task %s, retrying finalize", task_id)
        else:
            raise InvalidTransition(f"Task {task_id} kept changing during finalize")

        logger.info("Task %s finalized as %s", task_id, status.value)
        if self._tracker:
            await self._tracker.track(
                task_id,
                "finalized" if status in (TaskStatus.COMPLETED, TaskStatus.FAILED) else status.value,
                {"error": error} if error else {},
                status_from=TaskStatus.RUNNING.value,
                status_to=status.value,
            )
        return True

    async def touch_task(self, task_id: str) -> bool:
        """Renew the heartbeat of a running task."""
        task = await self.load_task_state(task_id)
        if task is None or task.status.is_terminal:
            return False
        await self.update_task_state(task_id, heartbeat_at=self._clock())
        return True

    async def record_stage(
        self,
        task_id: str,
        current_agent: str | None,
        completed_agents: Sequence[str],
        pipeline: Sequence[str] = CANONICAL_PIPELINE,
    ) -> TaskState | None:
        """Store pipeline position with derived progress, ETA and a heartbeat."""
        now = self._clock()
        task = await self.update_task_state(
            task_id,
            current_agent=current_agent,
            completed_agents=list(completed_agents),
            progress=Progress(
                percent=calculate_progress(current_agent, completed_agents),
                eta=estimate_eta(current_agent, completed_agents, pipeline),
            ),
            heartbeat_at=now,
        )
        if task is not None and self._tracker:
            await self._tracker.track(
                task_id,
                "progress",
                {"stage": current_agent, "percent": task.progress.percent},
            )
        return task

    async def get_all_tasks(self) -> list[TaskState]:
        return await self._load_many(await self._storage.list_tasks())

    async def get_running_tasks(self) -> list[TaskState]:
        return await self._load_many(
            await self._storage.list_tasks(status=TaskStatus.RUNNING.value)
        )

    async def get_project_tasks(self, project: str) -> list[TaskState]:
        return await self._load_many(await self._storage.list_tasks(project=project))

    # Crash recovery

    async def sync_task_states(self) -> list[str]:
        """Interrupt running tasks whose process is gone or whose lease lapsed.

        Returns the ids of the tasks that were interrupted.
        """
        interrupted = []
        now = self._clock()

        for task in await self.get_running_tasks():
            reason = None
            if task.pid is not None and not await self._pid_probe(task.pid):
                reason = PROCESS_DIED_ERROR
            elif self._heartbeat_grace is not None:
                last_seen = task.heartbeat_at or task.started_at
                if now - last_seen > timedelta(seconds=self._heartbeat_grace):
                    reason = (
                        f"Heartbeat lease expired (no renewal for "
                        f"{int((now - last_seen).total_seconds())}s)"
                    )

            if reason is None:
                continue
            if await self.finalize_task(task.task_id, TaskStatus.INTERRUPTED, error=reason):
                logger.warning("Task %s interrupted: %s", task.task_id, reason)
                interrupted.append(task.task_id)

        return interrupted

    async def cleanup_old_tasks(self, days_to_keep: int = 7) -> int:
        """Delete finished tasks older than `days_to_keep` days."""
        cutoff = self._clock() - timedelta(days=days_to_keep)
        deleted = 0
        for task in await self.get_all_tasks():
            if task.status is TaskStatus.RUNNING:
                continue
            if (task.completed_at or task.started_at) < cutoff:
                if await self.delete_task_state(task.task_id):
                    deleted += 1
        return deleted

    # Progress

    @staticmethod
    def calculate_progress(
        current_agent: str | None, completed_agents: Sequence[str] = ()
    ) -> float:
        return calculate_progress(current_agent, completed_agents)

    @staticmethod
    def estimate_eta(
        current_agent: str | None,
        completed_agents: Sequence[str] = (),
        pipeline: Sequence[str] = CANONICAL_PIPELINE,
    ) -> int:
        return estimate_eta(current_agent, completed_agents, pipeline)

    def format_task_summary(self, task: TaskState) -> dict:
        end = task.completed_at or self._clock()
        return {
            "id": task.task_id,
            "project": task.project,
            "status": task.status.value,
            "stage": task.current_agent or "-",
            "progress": task.progress.percent or 0,
            "eta": task.progress.eta if task.progress.eta is not None else "-",
            "duration": round((end - task.started_at).total_seconds()),
            "started": task.started_at.isoformat(),
        }

    # Subtasks

    async def save_subtask_state(self, subtask: SubtaskState) -> None:
        await self._storage.save_subtask(
            subtask.parent_task_id,
            subtask.subtask_id,
            subtask.status.value,
            subtask.started_at.isoformat(),
            json.dumps(subtask.to_dict(), default=str),
        )

    async def load_subtask_state(
        self, parent_task_id: str, subtask_id: str
    ) -> SubtaskState | None:
        raw = await self._storage.get_subtask(parent_task_id, subtask_id)
        if raw is None:
            return None
        return self._decode_subtask(subtask_id, raw)

    async def get_subtasks(self, parent_task_id: str) -> list[SubtaskState]:
        subtasks = [
            subtask
            for subtask_id, raw in await self._storage.list_subtasks(parent_task_id)
            if (subtask := self._decode_subtask(subtask_id, raw)) is not None
        ]
        return sorted(subtasks, key=lambda s: s.started_at)

    # Decoding

    async def _load_many(self, rows: list[tuple[str, str]]) -> list[TaskState]:
        return [
            task
            for task_id, raw in rows
            if (task := self._decode_task(task_id, raw)) is not None
        ]

    async def _load_versioned(self, task_id: str) -> tuple[TaskState, int] | None:
        found = await self._storage.get_task_versioned(task_id)
        if found is None:
            return None
        raw, version = found
        task = self._decode_task(task_id, raw)
        return (task, version) if task is not None else None

    def _decode_task(self, task_id: str, raw: str) -> TaskState | None:
        try:
            return TaskState.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Unreadable state for task %s: %s", task_id, e)
            return None

    def _decode_subtask(self, subtask_id: str, raw: str) -> SubtaskState | None:
        try:
            return SubtaskState.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Unreadable state for subtask %s: %s", subtask_id, e)
            return None
