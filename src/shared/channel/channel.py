"""Event channel: topic-based publish/subscribe between services.

Delivery is at-least-once. A consumer group receives every message on its
topic; messages sharing a key are handled one at a time in arrival order,
while different keys are handled concurrently. A handler that raises or
times out is retried with exponential backoff up to ``max_deliveries``
attempts, after which the message is moved to ``<topic>.dlq``. Exceptions
listed as non-retryable for a subscription skip straight to the dead-letter
topic.
"""

import asyncio
import os
import socket
import zlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import backoff
import structlog

from shared import metrics
from shared.channel.port import ChannelTransport, Message, TransportError
from shared.contracts import dead_letter_topic

logger = structlog.get_logger(__name__)

Handler = Callable[[Message], Awaitable[None]]


def _default_consumer_name() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


@dataclass(frozen=True)
class ChannelSettings:
    transport: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    stream_maxlen: int = 100_000
    publish_attempts: int = 5
    publish_backoff: float = 0.1
    publish_backoff_max: float = 2.0
    max_deliveries: int = 5
    redelivery_backoff: float = 0.2
    redelivery_backoff_max: float = 10.0
    handler_timeout: float = 30.0
    partitions: int = 8
    poll_timeout: float = 1.0
    consumer_name: str = field(default_factory=_default_consumer_name)

    @classmethod
    def from_env(cls) -> "ChannelSettings":
        return cls(
            transport=os.getenv("CHANNEL_TRANSPORT", "memory"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            stream_maxlen=int(os.getenv("CHANNEL_STREAM_MAXLEN", "100000")),
            publish_attempts=int(os.getenv("CHANNEL_PUBLISH_ATTEMPTS", "5")),
            max_deliveries=int(os.getenv("CHANNEL_MAX_DELIVERIES", "5")),
            handler_timeout=float(os.getenv("CHANNEL_HANDLER_TIMEOUT", "30")),
            partitions=int(os.getenv("CHANNEL_PARTITIONS", "8")),
            consumer_name=os.getenv("CHANNEL_CONSUMER_NAME") or _default_consumer_name(),
        )


@dataclass(frozen=True)
class Subscription:
    topic: str
    group: str
    handler: Handler
    non_retryable: tuple[type[BaseException], ...] = ()


class EventChannel:
    def __init__(self, transport: ChannelTransport, settings: ChannelSettings | None = None):
        self.transport = transport
        self.settings = settings or ChannelSettings()
        self.subscriptions: list[Subscription] = []
        self.stats = {
            "published": 0,
            "publish_failures": 0,
            "delivered": 0,
            "redelivered": 0,
            "dead_lettered": 0,
        }
        self._connected = False
        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._in_flight = 0

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def running(self) -> bool:
        return self._running

    async def connect(self) -> None:
        if not self._connected:
            await self.transport.connect()
            self._connected = True
            logger.info("channel_connected", transport=type(self.transport).__name__)

    async def close(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        if self._connected:
            await self.transport.close()
            self._connected = False
            logger.info("channel_closed")

    async def __aenter__(self) -> "EventChannel":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # Publishing

    async def publish(
        self,
        topic: str,
        payload: dict,
        key: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> bool:
        """Publish a payload to a topic.

        Transport failures are retried with exponential backoff. Returns
        ``False`` once the retry budget is exhausted; never raises for
        transport trouble.
        """
        message = Message(topic=topic, payload=payload, key=key, headers=dict(headers or {}))
        return await self.publish_message(message)

    async def publish_message(self, message: Message) -> bool:
        send = backoff.on_exception(
            backoff.expo,
            TransportError,
            max_tries=self.settings.publish_attempts,
            factor=self.settings.publish_backoff,
            max_value=self.settings.publish_backoff_max,
            on_backoff=self._log_publish_retry,
        )(self._send)

        try:
            await send(message)
        except TransportError as exc:
            self.stats["publish_failures"] += 1
            metrics.publish_failures.labels(topic=message.topic).inc()
            logger.error(
                "channel_publish_failed",
                topic=message.topic,
                message_id=message.message_id,
                attempts=self.settings.publish_attempts,
                error=str(exc),
            )
            return False

        self.stats["published"] += 1
        metrics.messages_published.labels(topic=message.topic).inc()
        logger.debug("channel_published", topic=message.topic, message_id=message.message_id, key=message.key)
        return True

    async def _send(self, message: Message) -> None:
        await self.connect()
        await self.transport.send(message)

    @staticmethod
    def _log_publish_retry(details) -> None:
        message = details["args"][0]
        logger.warning(
            "channel_publish_retry",
            topic=message.topic,
            message_id=message.message_id,
            attempt=details["tries"],
            wait=round(details["wait"], 3),
        )

    # Subscribing

    def subscribe(
        self,
        topic: str,
        handler: Handler,
        group: str = "default",
        non_retryable: tuple[type[BaseException], ...] = (),
    ) -> Subscription:
        """Register ``handler`` for ``topic`` within a consumer group.

        Subscriptions made after :meth:`start` begin consuming immediately.
        """
        subscription = Subscription(topic=topic, group=group, handler=handler, non_retryable=tuple(non_retryable))
        self.subscriptions.append(subscription)
        if self._running:
            self._tasks.append(asyncio.create_task(self._run_subscription(subscription)))
        return subscription

    async def start(self) -> None:
        if self._running:
            return
        await self.connect()
        self._running = True
        for subscription in self.subscriptions:
            # Groups exist before start() returns, so nothing published afterwards is missed
            await self.transport.ensure_group(subscription.topic, subscription.group)
            self._tasks.append(asyncio.create_task(self._run_subscription(subscription)))

    async def wait_idle(self, timeout: float = 5.0) -> bool:
        """Wait until nothing is queued, pending or being handled.

        Only meaningful with a transport that reports its backlog, which in
        practice means the in-memory transport used by tests.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if self._in_flight == 0 and self.transport.backlog() == 0:
                return True
            await asyncio.sleep(0.01)
        return False

    async def _run_subscription(self, subscription: Subscription) -> None:
        await self.transport.ensure_group(subscription.topic, subscription.group)
        logger.info("channel_subscribed", topic=subscription.topic, group=subscription.group)

        partitions = [asyncio.Queue() for _ in range(max(1, self.settings.partitions))]
        workers = [asyncio.create_task(self._drain(subscription, queue)) for queue in partitions]
        try:
            while self._running:
                try:
                    batch = await self.transport.receive(
                        subscription.topic,
                        subscription.group,
                        self.settings.consumer_name,
                        self.settings.poll_timeout,
                    )
                except TransportError as exc:
                    logger.warning(
                        "channel_receive_failed",
                        topic=subscription.topic,
                        group=subscription.group,
                        error=str(exc),
                    )
                    await asyncio.sleep(self.settings.poll_timeout)
                    continue

                for message in batch:
                    self._in_flight += 1
                    partitions[self._partition_for(message, len(partitions))].put_nowait(message)
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    @staticmethod
    def _partition_for(message: Message, count: int) -> int:
        return zlib.crc32((message.key or message.message_id).encode("utf-8")) % count

    async def _drain(self, subscription: Subscription, queue: asyncio.Queue) -> None:
        while True:
            message = await queue.get()
            try:
                await self._deliver(subscription, message)
            finally:
                self._in_flight -= 1

    async def _deliver(self, subscription: Subscription, message: Message) -> None:
        attempts = 0

        async def attempt() -> None:
            nonlocal attempts
            attempts += 1
            await asyncio.wait_for(subscription.handler(message), timeout=self.settings.handler_timeout)

        def on_backoff(details) -> None:
            self.stats["redelivered"] += 1
            metrics.messages_redelivered.labels(topic=subscription.topic, group=subscription.group).inc()
            logger.warning(
                "channel_redelivery",
                topic=subscription.topic,
                group=subscription.group,
                message_id=message.message_id,
                attempt=details["tries"],
                error=repr(details.get("exception")),
            )

        retrying = backoff.on_exception(
            backoff.expo,
            Exception,
            max_tries=max(1, self.settings.max_deliveries),
            factor=self.settings.redelivery_backoff,
            max_value=self.settings.redelivery_backoff_max,
            giveup=lambda exc: isinstance(exc, subscription.non_retryable),
            on_backoff=on_backoff,
        )(attempt)

        try:
            await retrying()
        except Exception as exc:
            if not await self._dead_letter(subscription, message, exc, attempts):
                # Left pending so the broker redelivers it later
                return
        else:
            self.stats["delivered"] += 1

        try:
            await self.transport.ack(message, subscription.group)
        except TransportError as exc:
            logger.warning(
                "channel_ack_failed",
                topic=subscription.topic,
                group=subscription.group,
                message_id=message.message_id,
                error=str(exc),
            )

    async def _dead_letter(self, subscription: Subscription, message: Message, exc: Exception, attempts: int) -> bool:
        error = f"{type(exc).__name__}: {exc}"
        headers = {
            **message.headers,
            "x-original-topic": message.topic,
            "x-original-message-id": message.message_id,
            "x-consumer-group": subscription.group,
            "x-error": error,
            "x-deliveries": str(attempts),
        }
        logger.error(
            "channel_dead_letter",
            topic=message.topic,
            group=subscription.group,
            message_id=message.message_id,
            deliveries=attempts,
            error=error,
        )
        published = await self.publish(
            dead_letter_topic(message.topic), message.payload, key=message.key, headers=headers
        )
        if published:
            self.stats["dead_lettered"] += 1
            metrics.messages_dead_lettered.labels(topic=message.topic, group=subscription.group).inc()
        return published
