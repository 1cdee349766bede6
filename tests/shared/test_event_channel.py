"""Tests for the event channel over the in-memory transport."""

import asyncio

import pytest
from prometheus_client import REGISTRY
from shared.channel import ChannelSettings, EventChannel, build_channel
from shared.channel.memory_adapter import InMemoryTransport
from shared.channel.redis_adapter import RedisStreamTransport


def _settings(**overrides):
    values = {
        "publish_attempts": 3,
        "publish_backoff": 0.001,
        "publish_backoff_max": 0.001,
        "max_deliveries": 3,
        "redelivery_backoff": 0.001,
        "redelivery_backoff_max": 0.001,
        "handler_timeout": 1.0,
        "partitions": 4,
        "poll_timeout": 0.05,
        "consumer_name": "test-consumer",
    }
    values.update(overrides)
    return ChannelSettings(**values)


@pytest.fixture()
def transport():
    return InMemoryTransport()


class TestPublish:
    def test_publish_appends_to_topic(self, transport):
        channel = EventChannel(transport, _settings())

        published = asyncio.run(channel.publish("sale.completed", {"sale_id": "S-1", "total": 10}, key="C-1"))

        assert published is True
        [message] = transport.messages("sale.completed")
        assert message.payload == {"sale_id": "S-1", "total": 10}
        assert message.key == "C-1"
        assert message.receipt is not None
        assert channel.stats["published"] == 1

    def test_transient_failures_are_retried(self, transport):
        transport.configure(fail_next_sends=2)
        channel = EventChannel(transport, _settings(publish_attempts=3))

        assert asyncio.run(channel.publish("sale.completed", {"sale_id": "S-1"})) is True
        assert len(transport.messages("sale.completed")) == 1

    def test_exhausted_retries_return_false(self, transport):
        transport.configure(fail_next_sends=5)
        channel = EventChannel(transport, _settings(publish_attempts=3))
        before = REGISTRY.get_sample_value("channel_publish_failures_total", {"topic": "sale.completed"}) or 0

        assert asyncio.run(channel.publish("sale.completed", {"sale_id": "S-1"})) is False

        assert transport.messages("sale.completed") == []
        assert channel.stats["publish_failures"] == 1
        after = REGISTRY.get_sample_value("channel_publish_failures_total", {"topic": "sale.completed"})
        assert after == before + 1

    def test_unreachable_broker_does_not_raise(self, transport):
        transport.configure(fail_connect=True)
        channel = EventChannel(transport, _settings(publish_attempts=2))

        assert asyncio.run(channel.publish("sale.completed", {"sale_id": "S-1"})) is False
        assert channel.connected is False


class TestDelivery:
    def test_every_group_receives_every_message(self, transport):
        received = {"loyalty": [], "dashboard": []}

        async def scenario():
            channel = EventChannel(transport, _settings())

            async def loyalty(message):
                received["loyalty"].append(message.payload["n"])

            async def dashboard(message):
                received["dashboard"].append(message.payload["n"])

            channel.subscribe("sale.completed", loyalty, group="loyalty")
            channel.subscribe("sale.completed", dashboard, group="dashboard")
            async with channel:
                await channel.start()
                for n in range(3):
                    await channel.publish("sale.completed", {"n": n}, key=f"K-{n}")
                assert await channel.wait_idle()

        asyncio.run(scenario())

        assert sorted(received["loyalty"]) == [0, 1, 2]
        assert sorted(received["dashboard"]) == [0, 1, 2]

    def test_late_group_reads_from_the_beginning(self, transport):
        received = []

        async def scenario():
            channel = EventChannel(transport, _settings())
            await channel.publish("sale.completed", {"n": 1})

            async def handler(message):
                received.append(message.payload["n"])

            channel.subscribe("sale.completed", handler, group="late")
            async with channel:
                await channel.start()
                assert await channel.wait_idle()

        asyncio.run(scenario())
        assert received == [1]

    def test_same_key_is_handled_in_order(self, transport):
        received = []

        async def scenario():
            channel = EventChannel(transport, _settings(partitions=8))

            async def handler(message):
                # Later messages finish faster, so only partitioning keeps them in order
                await asyncio.sleep(0.01 * (10 - message.payload["n"]) / 10)
                received.append(message.payload["n"])

            channel.subscribe("sale.completed", handler, group="ordered")
            async with channel:
                await channel.start()
                for n in range(10):
                    await channel.publish("sale.completed", {"n": n}, key="C-1")
                assert await channel.wait_idle()

        asyncio.run(scenario())
        assert received == list(range(10))

    def test_messages_are_acknowledged(self, transport):
        async def scenario():
            channel = EventChannel(transport, _settings())

            async def handler(message):
                return None

            channel.subscribe("sale.completed", handler, group="loyalty")
            async with channel:
                await channel.start()
                await channel.publish("sale.completed", {"n": 1})
                assert await channel.wait_idle()
            return channel

        channel = asyncio.run(scenario())
        assert transport.pending("sale.completed", "loyalty") == []
        assert channel.stats["delivered"] == 1


class TestRedeliveryAndDeadLetters:
    def test_failed_handler_is_retried(self, transport):
        attempts = []

        async def scenario():
            channel = EventChannel(transport, _settings(max_deliveries=3))

            async def flaky(message):
                attempts.append(message.message_id)
                if len(attempts) < 3:
                    raise RuntimeError("database unavailable")

            channel.subscribe("sale.completed", flaky, group="loyalty")
            async with channel:
                await channel.start()
                await channel.publish("sale.completed", {"n": 1})
                assert await channel.wait_idle()
            return channel

        channel = asyncio.run(scenario())

        assert len(attempts) == 3
        assert len(set(attempts)) == 1
        assert channel.stats["redelivered"] == 2
        assert channel.stats["dead_lettered"] == 0
        assert transport.messages("sale.completed.dlq") == []

    def test_poison_message_goes_to_dead_letter_topic(self, transport):
        attempts = []

        async def scenario():
            channel = EventChannel(transport, _settings(max_deliveries=3))

            async def broken(message):
                attempts.append(1)
                raise RuntimeError("cannot handle")

            channel.subscribe("sale.completed", broken, group="loyalty")
            async with channel:
                await channel.start()
                await channel.publish("sale.completed", {"sale_id": "S-1"}, key="C-1")
                assert await channel.wait_idle()
            return channel

        channel = asyncio.run(scenario())

        assert len(attempts) == 3
        [dead] = transport.messages("sale.completed.dlq")
        original = transport.messages("sale.completed")[0]
        assert dead.payload == {"sale_id": "S-1"}
        assert dead.key == "C-1"
        assert dead.headers["x-original-topic"] == "sale.completed"
        assert dead.headers["x-original-message-id"] == original.message_id
        assert dead.headers["x-consumer-group"] == "loyalty"
        assert dead.headers["x-deliveries"] == "3"
        assert dead.headers["x-error"].startswith("RuntimeError")
        assert channel.stats["dead_lettered"] == 1
        assert transport.pending("sale.completed", "loyalty") == []

    def test_non_retryable_errors_skip_redelivery(self, transport):
        attempts = []

        async def scenario():
            channel = EventChannel(transport, _settings(max_deliveries=5))

            async def strict(message):
                attempts.append(1)
                raise ValueError("malformed")

            channel.subscribe("sale.completed", strict, group="loyalty", non_retryable=(ValueError,))
            async with channel:
                await channel.start()
                await channel.publish("sale.completed", {"total": "abc"})
                assert await channel.wait_idle()

        asyncio.run(scenario())

        assert len(attempts) == 1
        [dead] = transport.messages("sale.completed.dlq")
        assert dead.headers["x-deliveries"] == "1"

    def test_slow_handler_times_out(self, transport):
        async def scenario():
            channel = EventChannel(transport, _settings(max_deliveries=2, handler_timeout=0.05))

            async def stuck(message):
                await asyncio.sleep(1)

            channel.subscribe("sale.completed", stuck, group="loyalty")
            async with channel:
                await channel.start()
                await channel.publish("sale.completed", {"n": 1})
                assert await channel.wait_idle(timeout=5)

        asyncio.run(scenario())

        [dead] = transport.messages("sale.completed.dlq")
        assert dead.headers["x-error"].startswith("TimeoutError")
        assert dead.headers["x-deliveries"] == "2"

    def test_message_stays_pending_when_dead_letter_fails(self, transport):
        async def scenario():
            channel = EventChannel(transport, _settings(max_deliveries=1, publish_attempts=1))

            async def broken(message):
                # Make the dead-letter publish fail too
                transport.configure(fail_next_sends=1)
                raise RuntimeError("cannot handle")

            channel.subscribe("sale.completed", broken, group="loyalty")
            async with channel:
                await channel.start()
                await channel.publish("sale.completed", {"n": 1})
                assert await channel.wait_idle(timeout=0.5) is False

        asyncio.run(scenario())

        assert transport.messages("sale.completed.dlq") == []
        assert len(transport.pending("sale.completed", "loyalty")) == 1


class TestInMemoryRetention:
    def test_topic_log_keeps_newest_messages(self):
        transport = InMemoryTransport(maxlen=3)
        channel = EventChannel(transport, _settings())

        async def scenario():
            for i in range(5):
                await channel.publish("sale.completed", {"sale_id": f"S-{i}"})

        asyncio.run(scenario())

        assert [p["sale_id"] for p in transport.payloads("sale.completed")] == ["S-2", "S-3", "S-4"]

    def test_late_group_reads_only_retained_messages(self):
        transport = InMemoryTransport(maxlen=3)
        channel = EventChannel(transport, _settings())

        async def scenario():
            for i in range(5):
                await channel.publish("sale.completed", {"sale_id": f"S-{i}"})
            await transport.ensure_group("sale.completed", "late")
            return await transport.receive("sale.completed", "late", "c1", timeout=0.05)

        batch = asyncio.run(scenario())

        assert [m.payload["sale_id"] for m in batch] == ["S-2", "S-3", "S-4"]
        assert transport.backlog() == 3

    def test_channel_settings_cap_the_memory_log(self):
        channel = build_channel(_settings(transport="memory", stream_maxlen=50))
        assert channel.transport.maxlen == 50


class TestBuildChannel:
    def test_memory_transport(self):
        channel = build_channel(_settings(transport="memory"))
        assert isinstance(channel.transport, InMemoryTransport)

    def test_redis_transport(self):
        channel = build_channel(_settings(transport="redis", redis_url="redis://cache:6379/2"))
        assert isinstance(channel.transport, RedisStreamTransport)
        assert channel.transport.url == "redis://cache:6379/2"

    def test_unknown_transport(self):
        with pytest.raises(ValueError):
            build_channel(_settings(transport="carrier-pigeon"))

    def test_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("CHANNEL_TRANSPORT", "redis")
        monkeypatch.setenv("CHANNEL_MAX_DELIVERIES", "7")
        monkeypatch.setenv("CHANNEL_CONSUMER_NAME", "worker-1")

        settings = ChannelSettings.from_env()

        assert settings.transport == "redis"
        assert settings.max_deliveries == 7
        assert settings.consumer_name == "worker-1"
