"""Parallel subtask execution with partial-failure aggregation."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from ..collaborators.sandbox import ISandbox, SandboxHandle, SandboxSpec
from ..collaborators.vcs import IVersionControl
from ..errors import ParallelExecutionError
from ..logging_config import get_logger
from ..models import SubtaskState, TaskStatus, utc_now
from ..tasks import TaskStateManager

logger = get_logger(__name__)


@dataclass
class Outcome:
    """A settled awaitable: a value or the exception it raised."""

    value: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FailedSubtask:
    subtask_id: str
    error: str


@dataclass
class ParallelResults:
    successful: list[Any] = field(default_factory=list)
    failed: list[FailedSubtask] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed)


class SubtaskFailed(Exception):
    """Failure of one parallel unit, tagged with its id."""

    def __init__(self, subtask_id: str, cause: BaseException):
        super().__init__(str(cause) or type(cause).__name__)
        self.subtask_id = subtask_id
        self.cause = cause


async def settle(awaitables: Iterable[Awaitable[Any]]) -> list[Outcome]:
    """Await everything concurrently; failures become Outcomes instead of raising."""
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    return [
        Outcome(error=r) if isinstance(r, BaseException) else Outcome(value=r)
        for r in results
    ]


def analyze_results(outcomes: Iterable[Outcome]) -> ParallelResults:
    """Split outcomes into successful values and failures, keeping input order."""
    results = ParallelResults()
    for outcome in outcomes:
        if outcome.ok:
            results.successful.append(outcome.value)
        else:
            results.failed.append(
                FailedSubtask(
                    subtask_id=getattr(outcome.error, "subtask_id", "unknown"),
                    error=str(outcome.error) or type(outcome.error).__name__,
                )
            )
    return results


@dataclass
class SubtaskSpec:
    """One part of a decomposed task."""

    role: str
    description: str
    files: list[str] = field(default_factory=list)
    payload: dict = field(default_factory=dict)


@dataclass
class SubtaskContext:
    subtask_id: str
    branch: str
    sandbox: SandboxHandle | None = None


@dataclass
class SubtaskResult:
    subtask_id: str
    branch: str
    role: str
    cost: float
    duration: float
    result: dict


SubtaskExecutor = Callable[[SubtaskSpec, SubtaskContext], Awaitable[dict]]


class ParallelExecutionCoordinator:
    """Runs the parts of one task concurrently.

    Each part gets its own subtask record, and optionally its own VCS branch
    and sandbox. Every part runs to completion before failures are reported.
    """

    def __init__(
        self,
        task_id: str,
        state_manager: TaskStateManager,
        executor: SubtaskExecutor,
        sandbox: ISandbox | None = None,
        vcs: IVersionControl | None = None,
        sandbox_memory: str = "4g",
        sandbox_cpus: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._task_id = task_id
        self._state = state_manager
        self._executor = executor
        self._sandbox = sandbox
        self._vcs = vcs
        self._sandbox_memory = sandbox_memory
        self._sandbox_cpus = sandbox_cpus
        self._clock = clock

    async def execute_parallel(
        self,
        parts: list[SubtaskSpec],
        base_branch: str | None = None,
        allow_partial: bool = False,
    ) -> dict:
        """Run all parts; raises ParallelExecutionError on any failure unless
        `allow_partial` is set."""
        logger.info("Task %s: running %s parts in parallel", self._task_id, len(parts))

        outcomes = await settle(
            self._execute_subtask(base_branch, part, index)
            for index, part in enumerate(parts)
        )
        analysis = analyze_results(outcomes)

        total_cost = sum(r.cost for r in analysis.successful)
        total_duration = max((r.duration for r in analysis.successful), default=0.0)
        logger.info(
            "Task %s: %s/%s parts succeeded, cost $%.4f",
            self._task_id,
            len(analysis.successful),
            len(parts),
            total_cost,
        )

        if analysis.failed and not allow_partial:
            raise ParallelExecutionError(
                f"{len(analysis.failed)} of {len(parts)} parallel tasks failed",
                analysis.failed,
            )

        return {
            "base_branch": base_branch,
            "results": analysis.successful,
            "failed": analysis.failed,
            "total_cost": total_cost,
            "total_duration": total_duration,
            "parallel_parts": len(parts),
        }

    async def _execute_subtask(
        self, base_branch: str | None, part: SubtaskSpec, index: int
    ) -> SubtaskResult:
        subtask_id = f"{self._task_id}-part{index + 1}"
        branch = f"task-{subtask_id}"
        started = self._clock()
        state = SubtaskState(
            parent_task_id=self._task_id,
            subtask_id=subtask_id,
            role=part.role,
            description=part.description,
            branch=branch,
        )
        await self._state.save_subtask_state(state)

        handle: SandboxHandle | None = None
        try:
            if self._vcs is not None:
                await self._vcs.create_branch(branch, base_branch)
            if self._sandbox is not None:
                handle = await self._sandbox.create(
                    SandboxSpec(
                        name=f"agent-{subtask_id}",
                        memory=self._sandbox_memory,
                        cpus=self._sandbox_cpus,
                    )
                )
                await self._sandbox.start(handle)

            result = await self._executor(
                part, SubtaskContext(subtask_id=subtask_id, branch=branch, sandbox=handle)
            )
        except Exception as e:
            state.status = TaskStatus.FAILED
            state.completed_at = utc_now()
            state.duration = self._clock() - started
            state.error = str(e)
            await self._state.save_subtask_state(state)
            logger.error("Subtask %s failed: %s", subtask_id, e)
            raise SubtaskFailed(subtask_id, e) from e
        finally:
            if handle is not None:
                await self._cleanup(subtask_id, handle)

        duration = self._clock() - started
        cost = float(result.get("cost", 0.0))
        state.status = TaskStatus.COMPLETED
        state.completed_at = utc_now()
        state.duration = duration
        state.cost = cost
        state.result = result
        await self._state.save_subtask_state(state)
        logger.info("Subtask %s completed in %.1fs", subtask_id, duration)

        return SubtaskResult(
            subtask_id=subtask_id,
            branch=branch,
            role=part.role,
            cost=cost,
            duration=duration,
            result=result,
        )

    async def _cleanup(self, subtask_id: str, handle: SandboxHandle) -> None:
        try:
            await self._sandbox.stop(handle)
            await self._sandbox.remove(handle)
        except Exception as e:
            logger.warning("Sandbox cleanup for %s failed: %s", subtask_id, e)
