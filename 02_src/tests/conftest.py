"""Pytest configuration and fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """UTC datetime clock advanced by hand."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from orchestrator.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def tracker(storage):
    """Create Tracker with storage."""
    from orchestrator.tracker import Tracker

    return Tracker(storage)


@pytest.fixture
def registry():
    from orchestrator.message_bus import AgentRegistry

    return AgentRegistry()


@pytest.fixture
def bus(registry):
    """Create MessageBus with an empty registry."""
    from orchestrator.message_bus import MessageBus

    return MessageBus(registry, max_log_size=50)


@pytest.fixture
def lock_manager(clock):
    """Lock manager driven by the fake clock."""
    from orchestrator.locking import LockManager

    lm = LockManager(default_ttl=30.0, clock=clock)
    yield lm
    lm.shutdown()


@pytest.fixture
def mock_llm():
    """Create mock LLM provider."""
    from orchestrator.llm import LLMResponse

    llm = Mock()
    llm.complete = AsyncMock(return_value='{"short_description": "Generated"}')
    llm.query = AsyncMock(
        return_value=LLMResponse(
            text="Test response",
            model="claude-3-5-sonnet-20241022",
            usage={"input_tokens": 1000, "output_tokens": 500},
        )
    )
    return llm


@pytest.fixture
def incident_fields():
    from orchestrator.models import FieldSchema

    return [
        FieldSchema(name="short_description", type="string", label="Short description",
                    mandatory=True, max_length=40),
        FieldSchema(name="priority", type="integer", label="Priority"),
        FieldSchema(name="active", type="boolean", label="Active"),
        FieldSchema(name="caller_id", type="reference", label="Caller", reference="sys_user"),
        FieldSchema(name="number", type="string", label="Number", read_only=True,
                    is_inherited=True, inherited_from="task"),
    ]


@pytest.fixture
def schema_source(incident_fields):
    from orchestrator.collaborators import InMemorySchemaSource

    return InMemorySchemaSource({"incident": incident_fields})


@pytest.fixture
def records():
    from orchestrator.collaborators import InMemoryRecordService

    return InMemoryRecordService()


@pytest_asyncio.fixture
async def agents(bus, schema_source, records, lock_manager, mock_llm):
    """The standard agent set registered on the bus and started."""
    from orchestrator.agents import (
        AIAgent,
        ParallelAgent,
        RecordOperationsAgent,
        SchemaAgent,
        ValidationAgent,
    )

    created = {
        "schema": SchemaAgent(bus, schema_source, agent_id="schema_agent"),
        "validation": ValidationAgent(bus, agent_id="validation_agent"),
        "record-ops": RecordOperationsAgent(
            bus, records, lock_manager, agent_id="record_ops_agent"
        ),
        "ai": AIAgent(bus, mock_llm, agent_id="ai_agent"),
        "parallel": ParallelAgent(bus, agent_id="parallel_agent"),
    }
    for agent in created.values():
        bus.register_agent(agent)
        await agent.start()
    yield created
    for agent in created.values():
        await agent.stop()


@pytest.fixture
def echo_agent_cls():
    """Minimal agent type with one succeeding and one failing action."""
    from enum import Enum

    from orchestrator.agents import BaseAgent

    class EchoAgent(BaseAgent):
        agent_type = "echo"

        class Action(str, Enum):
            ECHO = "echo"
            FAIL = "fail"

        def _handlers(self):
            return {self.Action.ECHO: self.echo, self.Action.FAIL: self.fail}

        async def echo(self, payload: dict) -> dict:
            return {"echo": payload}

        async def fail(self, payload: dict) -> dict:
            raise RuntimeError("boom")

    return EchoAgent


@pytest_asyncio.fixture
async def echo_agent(bus, echo_agent_cls):
    agent = echo_agent_cls(bus, agent_id="echo_agent")
    bus.register_agent(agent)
    await agent.start()
    yield agent
    await agent.stop()
