"""Redis Streams channel transport.

Each topic is a stream and each subscriber group a Redis consumer group.
Entries carry the JSON envelope in a single ``data`` field. On the first
read after a restart a consumer drains its own pending entries list before
asking for new messages, so unacknowledged work is redelivered.
"""

import structlog
from redis import asyncio as aioredis
from redis.exceptions import RedisError, ResponseError

from shared.channel.port import ChannelTransport, Message, TransportError

logger = structlog.get_logger(__name__)


class RedisStreamTransport(ChannelTransport):
    def __init__(self, url: str, maxlen: int = 100_000, batch_size: int = 50, client=None):
        self.url = url
        self.maxlen = maxlen
        self.batch_size = batch_size
        self._client = client
        # Replay position in each reader's pending entries list; gone once drained
        self._replay: dict[tuple[str, str, str], str] = {}
        self._drained: set[tuple[str, str, str]] = set()

    @property
    def client(self):
        if self._client is None:
            raise TransportError("Redis transport is not connected")
        return self._client

    async def connect(self) -> None:
        if self._client is None:
            self._client = aioredis.from_url(self.url, decode_responses=True)
        try:
            await self._client.ping()
        except RedisError as exc:
            raise TransportError(f"Cannot reach Redis at {self.url}: {exc}") from exc

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, message: Message) -> None:
        try:
            await self.client.xadd(
                message.topic,
                {"data": message.to_json()},
                maxlen=self.maxlen,
                approximate=True,
            )
        except RedisError as exc:
            raise TransportError(str(exc)) from exc

    async def ensure_group(self, topic: str, group: str) -> None:
        try:
            await self.client.xgroup_create(topic, group, id="0", mkstream=True)
        except ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise TransportError(str(exc)) from exc
        except RedisError as exc:
            raise TransportError(str(exc)) from exc

    async def receive(self, topic: str, group: str, consumer: str, timeout: float) -> list[Message]:
        reader = (topic, group, consumer)
        replaying = reader not in self._drained
        cursor = self._replay.get(reader, "0")
        try:
            response = await self.client.xreadgroup(
                group,
                consumer,
                {topic: cursor if replaying else ">"},
                count=self.batch_size,
                block=None if replaying else int(timeout * 1000),
            )
        except RedisError as exc:
            raise TransportError(str(exc)) from exc

        messages = []
        seen = 0
        for _stream, entries in response or []:
            for entry_id, fields in entries:
                seen += 1
                cursor = entry_id
                if not fields:
                    # Pending entry trimmed from the stream; nothing left to deliver
                    await self._ack_id(topic, group, entry_id)
                    continue
                messages.append(self._decode(topic, entry_id, fields.get("data", "")))

        if replaying:
            if seen < self.batch_size:
                self._drained.add(reader)
                self._replay.pop(reader, None)
            else:
                self._replay[reader] = cursor
        return messages

    async def ack(self, message: Message, group: str) -> None:
        await self._ack_id(message.topic, group, message.receipt)

    async def _ack_id(self, topic: str, group: str, entry_id: str) -> None:
        try:
            await self.client.xack(topic, group, entry_id)
        except RedisError as exc:
            raise TransportError(str(exc)) from exc

    @staticmethod
    def _decode(topic: str, entry_id: str, raw: str) -> Message:
        try:
            return Message.from_json(raw, receipt=entry_id)
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("channel_envelope_undecodable", topic=topic, entry_id=entry_id, error=str(exc))
            # Delivered as-is so the consumer dead-letters it instead of blocking the group
            return Message(
                topic=topic,
                payload={"raw": raw},
                message_id=entry_id,
                headers={"x-decode-error": str(exc)},
                receipt=entry_id,
            )
