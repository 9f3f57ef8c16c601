"""Agent registry shared by the bus and the orchestrator."""

from typing import Any, Protocol

from ..logging_config import get_logger
from ..models import AgentDescriptor, Message

logger = get_logger(__name__)


class IAgent(Protocol):
    """What the bus needs from an agent."""

    @property
    def descriptor(self) -> AgentDescriptor:
        """Identity and capabilities."""
        ...

    async def receive(self, message: Message) -> Any:
        """Handle a direct message and return its result."""
        ...

    async def start(self) -> None:
        """Subscribe to topics."""
        ...

    async def stop(self) -> None:
        """Unsubscribe from topics."""
        ...

    async def health_check(self) -> dict:
        """Status, metrics and health verdict."""
        ...


class AgentRegistry:
    """Registered agents indexed by id, type and capability.

    One instance per orchestrator process, passed explicitly to the bus and
    the orchestrator.
    """

    def __init__(self):
        self._agents: dict[str, IAgent] = {}

    def register(self, agent: IAgent) -> None:
        """Register an agent (replaces an agent with the same id)."""
        agent_id = agent.descriptor.id
        if agent_id in self._agents:
            logger.warning("Replacing registered agent %s", agent_id)
        self._agents[agent_id] = agent
        logger.info(
            "Agent registered: %s (%s)", agent.descriptor.name, agent.descriptor.type
        )

    def unregister(self, agent_id: str) -> IAgent | None:
        """Remove an agent; returns it, or None if unknown."""
        agent = self._agents.pop(agent_id, None)
        if agent is None:
            logger.warning("Agent not found: %s", agent_id)
        else:
            logger.info("Agent unregistered: %s", agent_id)
        return agent

    def get(self, agent_id: str) -> IAgent | None:
        return self._agents.get(agent_id)

    def find(self, type_or_name: str) -> IAgent | None:
        """First agent (in registration order) whose type or name matches."""
        for agent in self._agents.values():
            descriptor = agent.descriptor
            if descriptor.type == type_or_name or descriptor.name == type_or_name:
                return agent
        return None

    def by_type(self, agent_type: str) -> list[IAgent]:
        return [a for a in self._agents.values() if a.descriptor.type == agent_type]

    def by_capability(self, capability: str) -> list[IAgent]:
        return [a for a in self._agents.values() if a.descriptor.can(capability)]

    @property
    def agents(self) -> list[IAgent]:
        return list(self._agents.values())

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    async def start_all(self) -> None:
        """Start all registered agents."""
        for agent in self._agents.values():
            await agent.start()

    async def stop_all(self) -> None:
        """Stop all agents, continuing past individual failures."""
        for agent in self._agents.values():
            try:
                await agent.stop()
            except Exception as e:
                logger.error("Error stopping agent %s: %s", agent.descriptor.id, e)
