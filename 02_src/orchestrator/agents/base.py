"""BaseAgent: capability-gated action dispatch on top of the MessageBus."""

import asyncio
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, ClassVar

from ..errors import UnknownAction
from ..logging_config import get_logger, log_context
from ..message_bus import IMessageBus, TopicHandler
from ..models import AgentDescriptor, AgentMetrics, AgentStatus, Message

logger = get_logger(__name__)

ActionHandler = Callable[[dict], Awaitable[Any]]

MAX_ERRORS = 10
UNHEALTHY_ERROR_COUNT = 5


class BaseAgent:
    """Base class for agents reachable through the MessageBus.

    Subclasses declare `agent_type`, a str-valued `Action` enum and map every
    member to a coroutine in `_handlers()`. Missing handlers are a
    programming error and fail at construction.
    """

    agent_type: ClassVar[str] = "generic"
    Action: ClassVar[type[Enum]]

    def __init__(
        self,
        bus: IMessageBus,
        agent_id: str | None = None,
        name: str | None = None,
        capabilities: set[str] | None = None,
        config: dict | None = None,
    ):
        self._bus = bus
        if capabilities is None:
            capabilities = {action.value for action in self.Action}
        self._descriptor = AgentDescriptor(
            id=agent_id or str(uuid.uuid4()),
            name=name or type(self).__name__,
            type=self.agent_type,
            capabilities=frozenset(capabilities),
        )
        self._config = dict(config or {})
        self._status = AgentStatus.UNINITIALIZED
        self._metrics = AgentMetrics()
        self._errors: deque[dict] = deque(maxlen=MAX_ERRORS)
        self._subscribed: list[tuple[str, TopicHandler]] = []

        self._dispatch = self._handlers()
        missing = [a.value for a in self.Action if a not in self._dispatch]
        if missing:
            raise TypeError(
                f"{type(self).__name__} has no handler for actions: {missing}"
            )

    # Identity

    @property
    def descriptor(self) -> AgentDescriptor:
        return self._descriptor

    @property
    def id(self) -> str:
        return self._descriptor.id

    @property
    def name(self) -> str:
        return self._descriptor.name

    @property
    def status(self) -> AgentStatus:
        return self._status

    @property
    def metrics(self) -> AgentMetrics:
        return self._metrics

    @property
    def errors(self) -> list[dict]:
        return list(self._errors)

    # Subclass hooks

    def _handlers(self) -> dict[Enum, ActionHandler]:
        """Map each Action member to its handler."""
        raise NotImplementedError

    def subscriptions(self) -> dict[str, TopicHandler]:
        """Topics this agent listens on while started."""
        return {}

    # Lifecycle

    async def start(self) -> None:
        """Subscribe to this agent's topics and become idle."""
        for topic, handler in self.subscriptions().items():
            self._bus.subscribe(topic, handler, subscriber_id=self.id)
            self._subscribed.append((topic, handler))
        self._status = AgentStatus.IDLE
        logger.info("Agent %s started", self.name)

    async def stop(self) -> None:
        """Unsubscribe from all topics."""
        for topic, handler in self._subscribed:
            self._bus.unsubscribe(topic, handler)
        self._subscribed.clear()
        self._status = AgentStatus.STOPPED
        logger.info("Agent %s stopped", self.name)

    # Dispatch

    async def receive(self, message: Message) -> Any:
        """Handle a direct message from the bus.

        The action must be in this agent's capability set. The handler's
        result or exception is passed back to the sender.
        """
        payload = dict(message.payload)
        action = payload.pop("action", None)
        if not action or not self._descriptor.can(action):
            raise UnknownAction(self.name, str(action))

        started = time.monotonic()
        self._status = AgentStatus.BUSY
        logger.debug("Agent %s processing %s", self.name, action)
        try:
            with log_context(agent=self.id, action=action):
                result = await self.process_task(action, payload)
        except Exception as e:
            self._metrics.record(time.monotonic() - started, succeeded=False)
            self._add_error(action, e)
            self._status = (
                AgentStatus.ERROR
                if len(self._errors) >= UNHEALTHY_ERROR_COUNT
                else AgentStatus.IDLE
            )
            logger.error("Agent %s failed %s: %s", self.name, action, e)
            raise

        self._metrics.record(time.monotonic() - started, succeeded=True)
        self._status = AgentStatus.IDLE
        return result

    async def process_task(self, action: str | Enum, payload: dict) -> Any:
        """Run the handler registered for `action`."""
        try:
            member = self.Action(action)
        except ValueError:
            raise UnknownAction(self.name, str(action)) from None
        return await self._dispatch[member](payload)

    # Communication

    async def delegate_task(
        self, target_type: str, payload: dict, timeout: float | None = None
    ) -> Any:
        """Send `payload` to an agent of `target_type` and wait for its result."""
        logger.debug("Agent %s delegating %s to %s", self.name, payload.get("action"), target_type)
        message = Message(
            id=str(uuid.uuid4()),
            target=target_type,
            payload=payload,
            sender=self.id,
        )
        if timeout is None:
            return await self._bus.send(message)
        return await asyncio.wait_for(self._bus.send(message), timeout)

    async def publish(self, topic: str, data: dict) -> None:
        """Publish a domain event; subscriber failures are the bus's concern."""
        await self._bus.publish(
            topic,
            {
                "publisher_id": self.id,
                "publisher_name": self.name,
                "topic": topic,
                "data": data,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            sender=self.id,
        )

    # Health

    async def health_check(self) -> dict:
        healthy = (
            self._status not in (AgentStatus.ERROR, AgentStatus.UNINITIALIZED)
            and len(self._errors) < UNHEALTHY_ERROR_COUNT
        )
        return {
            "agent_id": self.id,
            "name": self.name,
            "type": self.agent_type,
            "status": self._status.value,
            "health": "healthy" if healthy else "unhealthy",
            "metrics": {
                "tasks_processed": self._metrics.tasks_processed,
                "tasks_succeeded": self._metrics.tasks_succeeded,
                "tasks_failed": self._metrics.tasks_failed,
                "average_task_time": self._metrics.average_task_time,
            },
            "error_count": len(self._errors),
            "capabilities": sorted(self._descriptor.capabilities),
        }

    def _add_error(self, action: str, error: Exception) -> None:
        self._errors.append(
            {
                "action": action,
                "error": str(error),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )
