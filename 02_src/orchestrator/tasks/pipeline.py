"""Staged task pipeline run by the background worker."""

from typing import Callable, Sequence

from ..collaborators.budget import BudgetTracker
from ..collaborators.task_runner import ITaskRunner
from ..logging_config import get_logger, log_context
from ..models import TaskStatus
from .state_manager import TaskStateManager

logger = get_logger(__name__)

DEFAULT_STAGES = ("architect", "coder", "reviewer")

ROLE_PROMPTS = {
    "architect": (
        "You are the architect. Break the task into a concrete implementation "
        "plan: components, files to touch, risks."
    ),
    "coder": (
        "You are the coder. Implement the plan you are given. Reply with the "
        "changes and a short summary."
    ),
    "reviewer": (
        "You are the reviewer. Review the implementation for bugs, missing "
        "cases and security problems. List findings, most severe first."
    ),
    "tester": (
        "You are the tester. Write the tests the implementation needs and "
        "report what they cover."
    ),
}

RunnerFactory = Callable[[str, str], ITaskRunner]  # (role, system_prompt)


class TaskCancelled(Exception):
    """The task left `running` while the pipeline was working on it."""


class TaskPipeline:
    """Runs a task through its stages, recording progress after each step.

    Each stage sees the original prompt plus the output of every earlier
    stage. Token usage of every call is charged to the BudgetTracker, whose
    BudgetExceeded stops the pipeline.
    """

    def __init__(
        self,
        state_manager: TaskStateManager,
        runner_factory: RunnerFactory,
        budget: BudgetTracker,
        stages: Sequence[str] = DEFAULT_STAGES,
    ):
        self._state = state_manager
        self._runner_factory = runner_factory
        self._budget = budget
        self._stages = tuple(stages)

    @property
    def stages(self) -> tuple[str, ...]:
        return self._stages

    async def run(self, task_id: str, prompt: str) -> dict:
        completed: list[str] = []
        outputs: dict[str, str] = {}
        history: list[dict] = []

        for stage in self._stages:
            await self._ensure_running(task_id)
            await self._state.record_stage(task_id, stage, completed, self._stages)
            logger.info("Task %s: stage %s started", task_id, stage)

            runner = self._runner_factory(stage, ROLE_PROMPTS.get(stage, ""))
            with log_context(task_id=task_id, stage=stage):
                response = await runner.query(self._stage_prompt(prompt, outputs), history)
            self._budget.add_usage(response.usage)

            history = [
                *history,
                {"role": "user", "content": f"[{stage}] {prompt}"},
                {"role": "assistant", "content": response.response},
            ]
            outputs[stage] = response.response
            completed.append(stage)

        await self._state.record_stage(task_id, None, completed, self._stages)
        return {
            "stages": outputs,
            "cost": self._budget.get_total_cost(),
            "calls": self._budget.get_usage_breakdown()["calls"],
        }

    async def run_and_finalize(self, task_id: str, prompt: str) -> bool:
        """Run the pipeline and write the terminal status. True on success."""
        try:
            result = await self.run(task_id, prompt)
        except TaskCancelled:
            logger.info("Task %s stopped: no longer running", task_id)
            return False
        except Exception as e:
            logger.error("Task %s failed: %s", task_id, e, exc_info=True)
            await self._state.finalize_task(task_id, TaskStatus.FAILED, error=str(e))
            return False

        await self._state.finalize_task(task_id, TaskStatus.COMPLETED, result=result)
        logger.info("Task %s completed (cost $%.4f)", task_id, result["cost"])
        return True

    async def _ensure_running(self, task_id: str) -> None:
        task = await self._state.load_task_state(task_id)
        if task is None or task.status.is_terminal:
            raise TaskCancelled(task_id)

    @staticmethod
    def _stage_prompt(prompt: str, outputs: dict[str, str]) -> str:
        if not outputs:
            return prompt
        previous = "\n\n".join(f"## {stage}\n{text}" for stage, text in outputs.items())
        return f"{prompt}\n\nOutput of earlier stages:\n\n{previous}"
