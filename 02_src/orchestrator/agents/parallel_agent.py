"""ParallelAgent: fan one request out to several delegated calls."""

from enum import Enum

from ..errors import ParallelExecutionError
from ..logging_config import get_logger
from ..parallel import SubtaskFailed, analyze_results, settle
from .base import BaseAgent

logger = get_logger(__name__)


class ParallelAgent(BaseAgent):
    """Runs a batch of delegations concurrently and aggregates the outcomes.

    Payload of `run-parallel`:
        calls: [{"target": <agent type>, "payload": {"action": ..., ...}}, ...]
        allow_partial: return partial results instead of raising
        timeout: per-call deadline in seconds
    """

    agent_type = "parallel"

    class Action(str, Enum):
        RUN_PARALLEL = "run-parallel"

    def _handlers(self):
        return {self.Action.RUN_PARALLEL: self.run_parallel}

    async def run_parallel(self, payload: dict) -> dict:
        calls = payload.get("calls") or []
        timeout = payload.get("timeout")

        async def call(index: int, spec: dict):
            call_id = spec.get("id") or f"call{index + 1}"
            try:
                return await self.delegate_task(
                    spec["target"], dict(spec.get("payload") or {}), timeout=timeout
                )
            except Exception as e:
                raise SubtaskFailed(call_id, e) from e

        analysis = analyze_results(
            await settle(call(i, spec) for i, spec in enumerate(calls))
        )
        failed = [{"subtask_id": f.subtask_id, "error": f.error} for f in analysis.failed]

        if failed and not payload.get("allow_partial", False):
            raise ParallelExecutionError(
                f"{len(failed)} of {len(calls)} parallel tasks failed", failed
            )
        if failed:
            logger.warning("%s of %s parallel calls failed", len(failed), len(calls))

        return {
            "successful": analysis.successful,
            "failed": failed,
            "total": analysis.total,
        }
