"""Message bus data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class DeliveryMode(str, Enum):
    """How a message reaches its recipients."""

    DIRECT = "direct"
    TOPIC = "topic"


@dataclass
class Message:
    """A message carried by the MessageBus.

    Exactly one of `target` (direct delivery) or `topic` (fan-out) is set.
    """

    id: str
    payload: dict
    target: str | None = None
    topic: str | None = None
    sender: str | None = None
    context: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if (self.target is None) == (self.topic is None):
            raise ValueError("Message needs exactly one of target or topic")

    @property
    def mode(self) -> DeliveryMode:
        return DeliveryMode.DIRECT if self.target is not None else DeliveryMode.TOPIC

    @property
    def action(self) -> str | None:
        """Action name for direct task messages."""
        return self.payload.get("action")


@dataclass
class PublishOutcome:
    """Result of delivering one published message to one subscriber."""

    subscriber_id: str
    result: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class MessageLogEntry:
    """Diagnostic record kept in the bus ring log."""

    mode: DeliveryMode
    address: str  # target for direct, topic for fan-out
    payload: dict
    sender: str | None
    logged_at: datetime
