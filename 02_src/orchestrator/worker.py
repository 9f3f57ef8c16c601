"""Background worker: `python -m orchestrator.worker <task_id>`.

Runs one task's pipeline in its own process and writes the outcome to the
shared task store.
"""

import asyncio
import sys

from dotenv import load_dotenv

from .collaborators import AnthropicTaskRunner, BudgetTracker
from .config import LOGS_DIR, PROJECT_ROOT, Settings
from .llm import ILLMProvider, LLMProvider
from .logging_config import get_logger, log_context, setup_logging
from .models import TaskStatus
from .storage import Storage
from .tasks import TaskPipeline, TaskStateManager
from .tracker import Tracker

logger = get_logger(__name__)


async def run_worker(
    task_id: str,
    settings: Settings | None = None,
    llm_provider: ILLMProvider | None = None,
) -> int:
    """Execute a stored task; returns the process exit code."""
    settings = settings or Settings.from_env()
    storage = Storage(settings.db_path)
    await storage.init()
    try:
        state = TaskStateManager(storage, Tracker(storage))
        task = await state.load_task_state(task_id)
        if task is None:
            logger.error("Task %s not found", task_id)
            return 1

        logger.info("Background task started: %s (project %s)", task_id, task.project)
        try:
            llm = llm_provider or LLMProvider(model=settings.llm_model)
        except ValueError as e:
            await state.finalize_task(task_id, TaskStatus.FAILED, error=str(e))
            return 1

        pipeline = TaskPipeline(
            state,
            lambda role, system_prompt: AnthropicTaskRunner(
                llm, role=role, system_prompt=system_prompt
            ),
            BudgetTracker(settings.max_budget_usd),
        )
        ok = await pipeline.run_and_finalize(task_id, task.prompt)
        return 0 if ok else 1
    finally:
        await storage.close()


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print("Usage: python -m orchestrator.worker <task_id>", file=sys.stderr)
        return 2

    task_id = argv[0]
    load_dotenv(PROJECT_ROOT / ".env")
    setup_logging(log_file=str(LOGS_DIR / f"task-{task_id}.log"), console=False)
    with log_context(task_id=task_id):
        return asyncio.run(run_worker(task_id))


if __name__ == "__main__":
    sys.exit(main())
