"""Tests for Orchestrator routing and built-in workflows."""

import pytest

from orchestrator.errors import RecipientNotFound, StepFailed, UnknownAction
from orchestrator.models import AgentStatus, Message
from orchestrator.orchestrator import Orchestrator


@pytest.fixture
def orchestrator(bus, registry, agents):
    orch = Orchestrator(bus, registry)
    orch.attach()
    yield orch
    orch.detach()


class TestRouting:
    """Tests for action routing."""

    async def test_route_by_action(self, orchestrator):
        result = await orchestrator.route_task("get-schema", {"table": "incident"})
        assert result["schema"]["table"] == "incident"

    async def test_unknown_action(self, orchestrator):
        with pytest.raises(UnknownAction):
            await orchestrator.route_task("launch-rockets", {})

    async def test_no_agent_of_type(self, orchestrator, bus):
        bus.unregister_agent("ai_agent")
        with pytest.raises(RecipientNotFound):
            await orchestrator.route_task("ai-generate", {"table": "incident"})

    async def test_agent_error_propagates_and_is_counted(self, orchestrator):
        with pytest.raises(KeyError):
            await orchestrator.route_task("get-schema", {})

        tasks = orchestrator.get_stats()["tasks"]
        assert tasks == {"routed": 1, "completed": 0, "failed": 1}

    def test_select_prefers_available_agent(
        self, orchestrator, bus, registry, schema_source
    ):
        from orchestrator.agents import SchemaAgent

        spare = SchemaAgent(bus, schema_source, agent_id="spare_schema")
        registry.register(spare)
        registry.get("schema_agent")._status = AgentStatus.ERROR

        assert orchestrator.select_agent("schema") is spare

    def test_capability_fallback(self, orchestrator, bus, registry, echo_agent_cls):
        registry.register(echo_agent_cls(bus, agent_id="echo"))
        assert orchestrator.determine_agent_type("echo") == "echo"


class TestSink:
    """Tests for messages addressed to the orchestrator."""

    async def test_route_task_message(self, orchestrator, bus):
        result = await bus.send(
            Message(
                id="m1",
                target="orchestrator",
                payload={
                    "action": "route-task",
                    "task": {"action": "get-table-info", "table": "incident"},
                },
            )
        )
        assert result["table_info"]["name"] == "incident"

    async def test_execute_workflow_message(self, orchestrator, bus, records):
        result = await bus.send(
            Message(
                id="m1",
                target="orchestrator",
                payload={
                    "action": "execute-workflow",
                    "workflow_name": "create-record",
                    "params": {
                        "table": "incident",
                        "data": {"short_description": "Disk full"},
                    },
                },
            )
        )
        assert result["success"] is True
        assert records.count("incident") == 1

    async def test_get_agents_message(self, orchestrator, bus):
        agents = await bus.send(
            Message(id="m1", target="orchestrator", payload={"action": "get-agents"})
        )
        assert {a["type"] for a in agents} == {
            "schema",
            "validation",
            "record-ops",
            "ai",
            "parallel",
        }

    async def test_unregister_agent_message(self, orchestrator, bus, registry):
        result = await bus.send(
            Message(
                id="m1",
                target="orchestrator",
                payload={"action": "unregister-agent", "agent_id": "ai_agent"},
            )
        )
        assert result == {"success": True}
        assert "ai_agent" not in registry

    async def test_unknown_sink_action(self, orchestrator, bus):
        with pytest.raises(UnknownAction):
            await bus.send(
                Message(id="m1", target="orchestrator", payload={"action": "dance"})
            )


class TestBuiltinWorkflows:
    """End-to-end runs of the built-in workflows through real agents."""

    async def test_create_record(self, orchestrator, records):
        run = await orchestrator.execute_workflow(
            "create-record",
            {"table": "incident", "data": {"short_description": "Disk full"}},
        )

        assert run.success
        assert run.results["validate-data"]["valid"] is True
        assert run.results["create-record"]["success"] is True
        assert records.count("incident") == 1

    async def test_create_record_with_ai(self, orchestrator, records):
        run = await orchestrator.execute_workflow(
            "create-record-with-ai",
            {"table": "incident", "prompt": "printer", "base_data": {"priority": 4}},
        )

        created = run.results["create-record"]["record"]
        assert created["short_description"] == "Generated"
        assert created["priority"] == 4

    async def test_update_record(self, orchestrator, records):
        record = await records.create_record("incident", {"short_description": "a"})

        run = await orchestrator.execute_workflow(
            "update-record",
            {
                "table": "incident",
                "sys_id": record["sys_id"],
                "data": {"number": "INC7"},
            },
        )

        assert run.results["validate-data"]["warnings"] == [
            "Field 'Number' (number) is read-only"
        ]
        assert run.results["update-record"]["record"]["number"] == "INC7"

    async def test_enhanced_create_without_ai_aborts(self, orchestrator, bus, records):
        """If the optional enhancement fails, validate-data has nothing to read."""
        bus.unregister_agent("ai_agent")

        with pytest.raises(StepFailed) as exc_info:
            await orchestrator.execute_workflow(
                "enhanced-create",
                {"table": "incident", "data": {"short_description": "x"}},
            )

        assert exc_info.value.step_name == "validate-data"
        assert exc_info.value.run.errors[0].step == "ai-enhance"
        assert records.count("incident") == 0

    async def test_stats(self, orchestrator):
        stats = orchestrator.get_stats()
        assert stats["agents"]["total"] == 5
        assert stats["workflows"] == {"registered": 4, "active": 0}
