"""In-memory channel transport for tests and single-process development.

Mirrors consumer-group semantics of the Redis Streams adapter: every group
sees every message on its topic, a group created late reads the topic from
the oldest retained message, and received messages stay pending until
acknowledged.
"""

import asyncio
import dataclasses
from collections import defaultdict, deque
from functools import partial

from shared.channel.port import ChannelTransport, Message, TransportError


class InMemoryTransport(ChannelTransport):
    """Fake broker that keeps each topic as a capped append-only log.

    Like ``XADD ... MAXLEN`` on the Redis adapter, only the newest ``maxlen``
    messages of a topic are kept for groups that join later.
    """

    def __init__(self, maxlen: int = 100_000):
        self.connected = False
        self.maxlen = maxlen
        self._log: dict[str, deque[Message]] = defaultdict(partial(deque, maxlen=maxlen))
        self._queues: dict[tuple[str, str], asyncio.Queue] = {}
        self._pending: dict[tuple[str, str], dict[str, Message]] = defaultdict(dict)
        # Receipts handed to a group and not yet acknowledged, received or not
        self._outstanding: dict[tuple[str, str], set[str]] = defaultdict(set)
        self._sequence = 0
        self.fail_next_sends = 0
        self.fail_connect = False

    def configure(self, fail_next_sends: int = 0, fail_connect: bool = False):
        """Configure the fake broker behavior for testing."""
        self.fail_next_sends = fail_next_sends
        self.fail_connect = fail_connect

    async def connect(self) -> None:
        if self.fail_connect:
            raise TransportError("Broker unavailable")
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def send(self, message: Message) -> None:
        if self.fail_next_sends > 0:
            self.fail_next_sends -= 1
            raise TransportError("Broker rejected the message")

        self._sequence += 1
        stored = dataclasses.replace(message, receipt=f"{self._sequence}-0")
        self._log[message.topic].append(stored)
        for (topic, group), queue in self._queues.items():
            if topic == message.topic:
                self._outstanding[(topic, group)].add(stored.receipt)
                queue.put_nowait(stored)

    async def ensure_group(self, topic: str, group: str) -> None:
        if (topic, group) in self._queues:
            return
        queue: asyncio.Queue = asyncio.Queue()
        for message in self._log[topic]:
            self._outstanding[(topic, group)].add(message.receipt)
            queue.put_nowait(message)
        self._queues[(topic, group)] = queue

    async def receive(self, topic: str, group: str, consumer: str, timeout: float) -> list[Message]:
        queue = self._queues.get((topic, group))
        if queue is None:
            raise TransportError(f"No consumer group {group} on {topic}")

        try:
            first = await asyncio.wait_for(queue.get(), timeout=timeout)
        except TimeoutError:
            return []

        batch = [first]
        while not queue.empty():
            batch.append(queue.get_nowait())

        pending = self._pending[(topic, group)]
        for message in batch:
            pending[message.receipt] = message
        return batch

    async def ack(self, message: Message, group: str) -> None:
        self._pending[(message.topic, group)].pop(message.receipt, None)
        self._outstanding[(message.topic, group)].discard(message.receipt)

    def backlog(self) -> int:
        return sum(len(receipts) for receipts in self._outstanding.values())

    # Inspection helpers used by tests

    def messages(self, topic: str) -> list[Message]:
        return list(self._log.get(topic, []))

    def payloads(self, topic: str) -> list[dict]:
        return [message.payload for message in self.messages(topic)]

    def pending(self, topic: str, group: str) -> list[Message]:
        return list(self._pending.get((topic, group), {}).values())
