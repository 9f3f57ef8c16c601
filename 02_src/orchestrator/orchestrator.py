"""Orchestrator: action routing and workflow execution behind the bus sink."""

import time
import uuid
from typing import Any

from .errors import RecipientNotFound, UnknownAction
from .logging_config import get_logger
from .message_bus import ORCHESTRATOR_SINK, AgentRegistry, IAgent, MessageBus
from .models import AgentStatus, Message, WorkflowDefinition, WorkflowRun
from .workflow import BUILTIN_WORKFLOWS, WorkflowExecutor

logger = get_logger(__name__)

ACTION_AGENT_TYPES = {
    # Record operations
    "create-record": "record-ops",
    "update-record": "record-ops",
    "delete-record": "record-ops",
    # Validation
    "validate-record": "validation",
    "validate-field": "validation",
    # Schema
    "get-schema": "schema",
    "get-fields": "schema",
    "get-table-info": "schema",
    "refresh-schema": "schema",
    # AI
    "ai-generate": "ai",
    "ai-enhance": "ai",
    "ai-analyze": "ai",
    # Fan-out
    "run-parallel": "parallel",
}

UNAVAILABLE = (AgentStatus.ERROR, AgentStatus.STOPPED)


class Orchestrator:
    """Routes actions to agents and runs workflows.

    Installed as the bus sink, so agents and clients can address it by
    name with `route-task`, `execute-workflow`, `get-agents`, `get-stats`
    and `unregister-agent` messages.
    """

    def __init__(
        self,
        bus: MessageBus,
        registry: AgentRegistry,
        register_builtins: bool = True,
    ):
        self._bus = bus
        self._registry = registry
        self._executor = WorkflowExecutor(self.route_task)
        self._started_at = time.monotonic()
        self._tasks_routed = 0
        self._tasks_completed = 0
        self._tasks_failed = 0

        if register_builtins:
            for definition in BUILTIN_WORKFLOWS.values():
                self._executor.register(definition)

    def attach(self) -> None:
        self._bus.set_sink(self.handle_message)

    def detach(self) -> None:
        self._bus.set_sink(None)

    # Routing

    def determine_agent_type(self, action: str) -> str | None:
        agent_type = ACTION_AGENT_TYPES.get(action)
        if agent_type is not None:
            return agent_type
        capable = self._registry.by_capability(action)
        return capable[0].descriptor.type if capable else None

    def select_agent(self, agent_type: str) -> IAgent | None:
        """Prefer an idle agent, then any available one, then any at all."""
        agents = self._registry.by_type(agent_type)
        if not agents:
            return None
        available = [a for a in agents if getattr(a, "status", None) not in UNAVAILABLE]
        for agent in available:
            if getattr(agent, "status", None) is AgentStatus.IDLE:
                return agent
        return available[0] if available else agents[0]

    async def route_task(self, action: str, payload: dict) -> Any:
        """Send `action` to the agent type that handles it and return the result."""
        self._tasks_routed += 1
        try:
            agent_type = self.determine_agent_type(action)
            if agent_type is None:
                raise UnknownAction(ORCHESTRATOR_SINK, action)

            agent = self.select_agent(agent_type)
            if agent is None:
                raise RecipientNotFound(agent_type)

            logger.debug("Routing %s to %s", action, agent.descriptor.name)
            result = await self._bus.send(
                Message(
                    id=str(uuid.uuid4()),
                    target=agent.descriptor.id,
                    payload={**payload, "action": action},
                    sender=ORCHESTRATOR_SINK,
                )
            )
        except Exception:
            self._tasks_failed += 1
            raise

        self._tasks_completed += 1
        return result

    # Workflows

    def register_workflow(self, definition: WorkflowDefinition) -> None:
        self._executor.register(definition)

    @property
    def workflows(self) -> list[WorkflowDefinition]:
        return self._executor.workflows

    async def execute_workflow(self, name: str, params: dict | None = None) -> WorkflowRun:
        return await self._executor.execute(name, params)

    # Sink

    async def handle_message(self, message: Message) -> Any:
        payload = message.payload
        action = payload.get("action")

        if action == "route-task":
            task = dict(payload.get("task") or {})
            return await self.route_task(task.pop("action", None), task)
        if action == "execute-workflow":
            run = await self.execute_workflow(
                payload["workflow_name"], payload.get("params")
            )
            return run.to_dict()
        if action == "get-agents":
            return self.get_agents()
        if action == "get-stats":
            return self.get_stats()
        if action == "unregister-agent":
            agent = self._registry.unregister(payload["agent_id"])
            if agent is not None:
                await agent.stop()
            return {"success": agent is not None}

        raise UnknownAction(ORCHESTRATOR_SINK, str(action))

    # Diagnostics

    def get_agents(self) -> list[dict]:
        return [
            {
                "id": agent.descriptor.id,
                "name": agent.descriptor.name,
                "type": agent.descriptor.type,
                "status": getattr(getattr(agent, "status", None), "value", None),
                "capabilities": sorted(agent.descriptor.capabilities),
            }
            for agent in self._registry.agents
        ]

    def get_stats(self) -> dict:
        by_type: dict[str, int] = {}
        for agent in self._registry.agents:
            by_type[agent.descriptor.type] = by_type.get(agent.descriptor.type, 0) + 1

        return {
            "uptime": time.monotonic() - self._started_at,
            "agents": {"total": len(self._registry), "by_type": by_type},
            "tasks": {
                "routed": self._tasks_routed,
                "completed": self._tasks_completed,
                "failed": self._tasks_failed,
            },
            "workflows": {
                "registered": len(self._executor.workflows),
                "active": len(self._executor.active_runs),
            },
        }
