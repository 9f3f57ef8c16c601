"""MessageBus module."""

from .bus import ORCHESTRATOR_SINK, IMessageBus, MessageBus, SinkHandler, TopicHandler
from .registry import AgentRegistry, IAgent

__all__ = [
    "AgentRegistry",
    "IAgent",
    "IMessageBus",
    "MessageBus",
    "ORCHESTRATOR_SINK",
    "SinkHandler",
    "TopicHandler",
]
