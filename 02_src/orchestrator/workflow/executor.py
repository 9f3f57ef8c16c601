"""Sequential workflow executor."""

import uuid
from typing import Any, Awaitable, Callable

from ..errors import StepFailed, UnknownWorkflow
from ..logging_config import get_logger
from ..models import StepError, WorkflowDefinition, WorkflowRun, utc_now
from .definitions import validate_definition
from .template import render_payload

logger = get_logger(__name__)

StepRunner = Callable[[str, dict], Awaitable[Any]]  # (action, rendered payload)


class WorkflowExecutor:
    """Runs registered workflows one step at a time.

    Each step's payload is rendered against the run params and the results
    of the steps before it, then handed to the step runner. A failing
    optional step is recorded in `run.errors` and gets no results entry; any
    other failure ends the run with StepFailed.
    """

    def __init__(self, step_runner: StepRunner):
        self._run_step = step_runner
        self._workflows: dict[str, WorkflowDefinition] = {}
        self._active: dict[str, WorkflowRun] = {}

    def register(self, definition: WorkflowDefinition) -> None:
        validate_definition(definition)
        self._workflows[definition.name] = definition
        logger.info("Workflow registered: %s", definition.name)

    def get(self, name: str) -> WorkflowDefinition:
        try:
            return self._workflows[name]
        except KeyError:
            raise UnknownWorkflow(f"Unknown workflow: {name}") from None

    @property
    def workflows(self) -> list[WorkflowDefinition]:
        return list(self._workflows.values())

    @property
    def active_runs(self) -> list[WorkflowRun]:
        return list(self._active.values())

    async def execute(self, name: str, params: dict | None = None) -> WorkflowRun:
        definition = self.get(name)
        run = WorkflowRun(
            workflow_id=str(uuid.uuid4()),
            workflow_name=definition.name,
            params=dict(params or {}),
        )
        self._active[run.workflow_id] = run
        logger.info("Executing workflow %s (%s)", definition.name, run.workflow_id)

        try:
            total = len(definition.steps)
            for index, step in enumerate(definition.steps, start=1):
                logger.info("Workflow step %s/%s: %s", index, total, step.name)
                try:
                    payload = render_payload(step.payload, run.params, run.results)
                    result = await self._run_step(step.action, payload)
                except Exception as e:
                    run.errors.append(
                        StepError(step=step.name, error=str(e), optional=step.optional)
                    )
                    if step.optional:
                        logger.warning("Optional step %s failed: %s", step.name, e)
                        continue
                    run.success = False
                    run.finished_at = utc_now()
                    logger.error("Workflow %s failed at %s: %s", definition.name, step.name, e)
                    raise StepFailed(step.name, e, run) from e
                run.results[step.name] = result

            run.success = True
            run.finished_at = utc_now()
            logger.info("Workflow completed: %s (%.3fs)", definition.name, run.duration)
            return run
        finally:
            self._active.pop(run.workflow_id, None)
