"""MessageBus implementation: direct delivery plus pub/sub."""

import asyncio
import copy
import inspect
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol

from ..errors import RecipientNotFound
from ..logging_config import get_logger
from ..models import DeliveryMode, Message, MessageLogEntry, PublishOutcome
from .registry import AgentRegistry, IAgent

logger = get_logger(__name__)

ORCHESTRATOR_SINK = "orchestrator"

TopicHandler = Callable[[dict], Awaitable[Any] | Any]
SinkHandler = Callable[[Message], Awaitable[Any]]


class IMessageBus(Protocol):
    """In-memory bus for exchanging Messages between agents."""

    async def send(self, message: Message) -> Any:
        """Deliver a direct message to exactly one recipient and return its result."""
        ...

    async def publish(
        self, topic: str, data: dict, sender: str | None = None
    ) -> list[PublishOutcome]:
        """Deliver data to every subscriber of a topic."""
        ...

    def subscribe(
        self, topic: str, handler: TopicHandler, subscriber_id: str | None = None
    ) -> None:
        """Subscribe a handler to a topic."""
        ...

    def unsubscribe(self, topic: str, handler: TopicHandler) -> bool:
        """Remove a handler from a topic."""
        ...


class MessageBus:
    """In-memory message bus."""

    def __init__(
        self,
        registry: AgentRegistry,
        max_log_size: int = 1000,
        sink_name: str = ORCHESTRATOR_SINK,
    ):
        self._registry = registry
        self._sink_name = sink_name
        self._sink: SinkHandler | None = None
        # topic -> {handler: subscriber_id}, insertion ordered
        self._topics: dict[str, dict[TopicHandler, str]] = {}
        self._log: deque[MessageLogEntry] = deque(maxlen=max_log_size)

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    # Agents

    def register_agent(self, agent: IAgent) -> None:
        """Register an agent so it can receive direct messages."""
        self._registry.register(agent)

    def unregister_agent(self, agent_id: str) -> None:
        """Unregister an agent."""
        self._registry.unregister(agent_id)

    def set_sink(self, handler: SinkHandler | None) -> None:
        """Install the handler for messages addressed to the reserved sink name."""
        self._sink = handler

    # Direct delivery

    async def send(self, message: Message) -> Any:
        """Deliver a direct message to exactly one recipient.

        Resolution order: exact agent id, then agent type or name, then the
        reserved sink. The recipient's return value (or exception) is passed
        through to the caller.
        """
        if message.target is None:
            raise ValueError("send() requires a message with a target")
        if not message.id:
            message.id = str(uuid.uuid4())

        self._log_message(message.mode, message.target, message.payload, message.sender)

        agent = self._registry.get(message.target) or self._registry.find(
            message.target
        )
        if agent is not None:
            return await agent.receive(message)

        if message.target == self._sink_name and self._sink is not None:
            return await self._sink(message)

        raise RecipientNotFound(message.target)

    # Pub/sub

    async def publish(
        self, topic: str, data: dict, sender: str | None = None
    ) -> list[PublishOutcome]:
        """Deliver data concurrently to every current subscriber of a topic.

        A failing subscriber is logged and reported in its PublishOutcome; it
        never prevents delivery to the others. Returns once every handler has
        settled.
        """
        self._log_message(DeliveryMode.TOPIC, topic, data, sender)

        subscribers = list(self._topics.get(topic, {}).items())
        if not subscribers:
            logger.debug("No subscribers for topic: %s", topic)
            return []

        snapshot = copy.deepcopy(data)

        async def deliver(handler: TopicHandler, subscriber_id: str) -> PublishOutcome:
            try:
                result = handler(snapshot)
                if inspect.isawaitable(result):
                    result = await result
                return PublishOutcome(subscriber_id=subscriber_id, result=result)
            except Exception as e:
                logger.error(
                    "Error in subscriber %s for %s: %s",
                    subscriber_id,
                    topic,
                    e,
                    exc_info=True,
                )
                return PublishOutcome(subscriber_id=subscriber_id, error=e)

        return list(
            await asyncio.gather(
                *[deliver(handler, sub_id) for handler, sub_id in subscribers]
            )
        )

    def subscribe(
        self, topic: str, handler: TopicHandler, subscriber_id: str | None = None
    ) -> None:
        """Subscribe a handler to a topic."""
        handlers = self._topics.setdefault(topic, {})
        handlers[handler] = subscriber_id or getattr(
            handler, "__qualname__", repr(handler)
        )
        logger.debug(
            "New subscription to topic: %s (%s subscribers)", topic, len(handlers)
        )

    def unsubscribe(self, topic: str, handler: TopicHandler) -> bool:
        """Remove a handler; an emptied topic is pruned."""
        handlers = self._topics.get(topic)
        if not handlers or handler not in handlers:
            return False
        del handlers[handler]
        if not handlers:
            del self._topics[topic]
        return True

    def subscribers(self, topic: str) -> list[str]:
        """Subscriber ids of a topic."""
        return list(self._topics.get(topic, {}).values())

    @property
    def topics(self) -> list[str]:
        return list(self._topics)

    # Diagnostics

    def get_message_log(self, limit: int = 100) -> list[MessageLogEntry]:
        """Most recent log entries, oldest first."""
        if limit <= 0:
            return []
        return list(self._log)[-limit:]

    def clear_message_log(self) -> None:
        self._log.clear()

    def get_stats(self) -> dict:
        return {
            "registered_agents": len(self._registry),
            "topics": len(self._topics),
            "message_log_size": len(self._log),
            "topic_subscribers": [
                {"topic": topic, "subscribers": len(handlers)}
                for topic, handlers in self._topics.items()
            ],
        }

    async def shutdown(self) -> None:
        """Drop all subscriptions."""
        logger.info("Shutting down message bus")
        self._topics.clear()
        self._sink = None

    def _log_message(
        self, mode: DeliveryMode, address: str, payload: dict, sender: str | None
    ) -> None:
        self._log.append(
            MessageLogEntry(
                mode=mode,
                address=address,
                payload=payload,
                sender=sender,
                logged_at=datetime.now(timezone.utc),
            )
        )
