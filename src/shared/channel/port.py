"""Channel transport port: abstract interface for message brokers.

The event channel programs against this port; the in-memory and Redis
Streams adapters are swapped via configuration.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4


class TransportError(Exception):
    """The broker could not accept or deliver a message."""


@dataclass(frozen=True)
class Message:
    """One message on a topic.

    ``key`` selects the partition, so messages sharing a key are handled in
    arrival order. ``receipt`` is the transport's delivery handle (a Redis
    stream entry id, for example) used to acknowledge the message.
    """

    topic: str
    payload: dict[str, Any]
    key: str | None = None
    message_id: str = field(default_factory=lambda: uuid4().hex)
    headers: dict[str, str] = field(default_factory=dict)
    published_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    receipt: str | None = None

    def to_json(self) -> str:
        return json.dumps(
            {
                "topic": self.topic,
                "payload": self.payload,
                "key": self.key,
                "message_id": self.message_id,
                "headers": self.headers,
                "published_at": self.published_at,
            }
        )

    @classmethod
    def from_json(cls, raw: str, receipt: str | None = None) -> "Message":
        data = json.loads(raw)
        return cls(
            topic=data["topic"],
            payload=data.get("payload") or {},
            key=data.get("key"),
            message_id=data["message_id"],
            headers=data.get("headers") or {},
            published_at=data.get("published_at") or datetime.now(UTC).isoformat(),
            receipt=receipt,
        )


class ChannelTransport(ABC):
    """Abstract interface for channel transports."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection to the broker. Raises TransportError."""
        ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def send(self, message: Message) -> None:
        """Append a message to its topic. Raises TransportError."""
        ...

    @abstractmethod
    async def ensure_group(self, topic: str, group: str) -> None:
        """Create the consumer group for a topic if it does not exist yet."""
        ...

    @abstractmethod
    async def receive(self, topic: str, group: str, consumer: str, timeout: float) -> list[Message]:
        """Wait up to ``timeout`` seconds for messages for this group.

        Returned messages stay pending for the group until acknowledged.
        """
        ...

    @abstractmethod
    async def ack(self, message: Message, group: str) -> None: ...

    def backlog(self) -> int:
        """Messages accepted by the transport but not yet handed to a consumer."""
        return 0
