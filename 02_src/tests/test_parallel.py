"""Tests for parallel execution and result aggregation."""

import asyncio

import pytest
import pytest_asyncio

from orchestrator.collaborators import SandboxHandle
from orchestrator.errors import ParallelExecutionError
from orchestrator.models import TaskState, TaskStatus
from orchestrator.parallel import (
    Outcome,
    ParallelExecutionCoordinator,
    SubtaskFailed,
    SubtaskSpec,
    analyze_results,
    settle,
)
from orchestrator.tasks import TaskStateManager


class TestSettleAndAnalyze:
    """Tests for settle() and analyze_results()."""

    async def test_settle_collects_values_and_errors(self):
        async def ok(value):
            return value

        async def boom():
            raise RuntimeError("boom")

        outcomes = await settle([ok(1), boom(), ok(3)])

        assert [o.ok for o in outcomes] == [True, False, True]
        assert outcomes[0].value == 1
        assert isinstance(outcomes[1].error, RuntimeError)

    def test_analyze_partitions_in_order(self):
        outcomes = [
            Outcome(value="a"),
            Outcome(error=SubtaskFailed("t-part2", RuntimeError("down"))),
            Outcome(value="c"),
            Outcome(error=ValueError()),
        ]

        results = analyze_results(outcomes)

        assert results.successful == ["a", "c"]
        assert [(f.subtask_id, f.error) for f in results.failed] == [
            ("t-part2", "down"),
            ("unknown", "ValueError"),
        ]
        assert results.total == len(outcomes)

    def test_analyze_empty(self):
        results = analyze_results([])
        assert results.successful == [] and results.failed == []


class FakeSandbox:
    def __init__(self, fail_stop: bool = False):
        self.events = []
        self.fail_stop = fail_stop

    async def create(self, spec):
        self.events.append(("create", spec.name, spec.memory_bytes, spec.cpus))
        return SandboxHandle(id=f"c-{spec.name}", name=spec.name)

    async def start(self, handle):
        self.events.append(("start", handle.name))

    async def stop(self, handle):
        self.events.append(("stop", handle.name))
        if self.fail_stop:
            raise RuntimeError("daemon gone")

    async def remove(self, handle):
        self.events.append(("remove", handle.name))


class FakeVCS:
    def __init__(self):
        self.branches = []

    async def create_branch(self, name, base=None):
        self.branches.append((name, base))


@pytest_asyncio.fixture
async def state(storage, tracker):
    manager = TaskStateManager(storage, tracker)
    await manager.save_task_state(TaskState(task_id="task1", project="demo"))
    return manager


PARTS = [
    SubtaskSpec(role="coder", description="backend"),
    SubtaskSpec(role="coder", description="frontend"),
    SubtaskSpec(role="tester", description="tests"),
]


class TestParallelExecutionCoordinator:
    """Tests for execute_parallel()."""

    async def test_all_succeed(self, state):
        async def executor(part, context):
            await asyncio.sleep(0)
            return {"cost": 0.5, "summary": part.description, "branch": context.branch}

        coordinator = ParallelExecutionCoordinator("task1", state, executor)
        result = await coordinator.execute_parallel(PARTS, base_branch="main")

        assert result["parallel_parts"] == 3
        assert result["total_cost"] == pytest.approx(1.5)
        assert [r.subtask_id for r in result["results"]] == [
            "task1-part1",
            "task1-part2",
            "task1-part3",
        ]
        assert result["results"][0].branch == "task-task1-part1"

        subtasks = await state.get_subtasks("task1")
        assert {s.status for s in subtasks} == {TaskStatus.COMPLETED}
        assert {s.cost for s in subtasks} == {0.5}

    async def test_failure_raises_after_all_parts_finish(self, state):
        finished = []

        async def executor(part, context):
            if part.description == "frontend":
                raise RuntimeError("compile error")
            finished.append(part.description)
            return {"cost": 0.1}

        coordinator = ParallelExecutionCoordinator("task1", state, executor)

        with pytest.raises(ParallelExecutionError) as exc_info:
            await coordinator.execute_parallel(PARTS)

        assert str(exc_info.value) == "1 of 3 parallel tasks failed"
        assert [(f.subtask_id, f.error) for f in exc_info.value.failed] == [
            ("task1-part2", "compile error")
        ]
        assert sorted(finished) == ["backend", "tests"]

        failed = await state.load_subtask_state("task1", "task1-part2")
        assert failed.status is TaskStatus.FAILED
        assert failed.error == "compile error"

    async def test_allow_partial(self, state):
        async def executor(part, context):
            if part.role == "tester":
                raise RuntimeError("flaky")
            return {"cost": 1.0}

        coordinator = ParallelExecutionCoordinator("task1", state, executor)
        result = await coordinator.execute_parallel(PARTS, allow_partial=True)

        assert len(result["results"]) == 2
        assert len(result["failed"]) == 1
        assert result["total_cost"] == 2.0

    async def test_sandbox_and_branch_lifecycle(self, state):
        sandbox = FakeSandbox()
        vcs = FakeVCS()
        seen = []

        async def executor(part, context):
            seen.append(context.sandbox.id)
            return {}

        coordinator = ParallelExecutionCoordinator(
            "task1", state, executor, sandbox=sandbox, vcs=vcs
        )
        await coordinator.execute_parallel(PARTS[:1], base_branch="main")

        assert vcs.branches == [("task-task1-part1", "main")]
        assert seen == ["c-agent-task1-part1"]
        assert sandbox.events == [
            ("create", "agent-task1-part1", 4 * 1024**3, 2.0),
            ("start", "agent-task1-part1"),
            ("stop", "agent-task1-part1"),
            ("remove", "agent-task1-part1"),
        ]

    async def test_sandbox_cleaned_up_on_failure(self, state):
        sandbox = FakeSandbox()

        async def executor(part, context):
            raise RuntimeError("crash")

        coordinator = ParallelExecutionCoordinator("task1", state, executor, sandbox=sandbox)
        with pytest.raises(ParallelExecutionError):
            await coordinator.execute_parallel(PARTS[:1])

        assert ("remove", "agent-task1-part1") in sandbox.events

    async def test_cleanup_error_does_not_fail_subtask(self, state):
        sandbox = FakeSandbox(fail_stop=True)

        async def executor(part, context):
            return {"cost": 0.2}

        coordinator = ParallelExecutionCoordinator("task1", state, executor, sandbox=sandbox)
        result = await coordinator.execute_parallel(PARTS[:1])

        assert result["total_cost"] == 0.2


class TestParallelAgent:
    """Tests for the run-parallel action."""

    async def test_fans_out_delegations(self, agents):
        result = await agents["parallel"].run_parallel(
            {
                "calls": [
                    {"target": "schema", "payload": {"action": "get-schema", "table": "incident"}},
                    {"target": "schema", "payload": {"action": "get-table-info", "table": "incident"}},
                ]
            }
        )

        assert result["total"] == 2
        assert result["failed"] == []
        assert result["successful"][1]["table_info"]["name"] == "incident"

    async def test_failure_raises_unless_partial(self, agents):
        calls = [
            {"target": "schema", "payload": {"action": "get-table-info", "table": "incident"}},
            {"id": "bad", "target": "nobody", "payload": {"action": "x"}},
        ]

        with pytest.raises(ParallelExecutionError) as exc_info:
            await agents["parallel"].run_parallel({"calls": calls})
        assert exc_info.value.failed[0]["subtask_id"] == "bad"

        result = await agents["parallel"].run_parallel({"calls": calls, "allow_partial": True})
        assert len(result["successful"]) == 1
        assert result["failed"] == [
            {"subtask_id": "bad", "error": "Target agent not found: nobody"}
        ]
