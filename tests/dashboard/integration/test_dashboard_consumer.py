"""Integration tests for the dashboard consumer running on the channel."""

import asyncio
from datetime import UTC, datetime

import pytest
from dashboard.consumers import CONSUMER_GROUP, idempotency_key, register_consumers
from dashboard.domain import dashboard
from dashboard.metrics.daily_metrics import metrics_for
from dashboard.metrics.realtime_event import recent_events
from shared.channel import ChannelSettings, EventChannel, Message
from shared.channel.memory_adapter import InMemoryTransport
from shared.contracts import SaleCompleted


@pytest.fixture()
def transport():
    return InMemoryTransport()


@pytest.fixture()
def channel(transport):
    return EventChannel(
        transport,
        ChannelSettings(
            max_deliveries=2,
            redelivery_backoff=0.001,
            redelivery_backoff_max=0.001,
            poll_timeout=0.05,
            consumer_name="dashboard-test",
        ),
    )


def _publish_all(channel, *messages):
    async def scenario():
        register_consumers(channel, dashboard)
        async with channel:
            await channel.start()
            for topic, payload in messages:
                await channel.publish(topic, payload)
            assert await channel.wait_idle(timeout=10)

    asyncio.run(scenario())


def _today():
    return metrics_for(datetime.now(UTC).date().isoformat())


def test_all_topics_are_counted(channel):
    _publish_all(
        channel,
        ("sale.completed", {"sale_id": "S-1", "customer_id": "C-1", "total": 120.0}),
        ("customer.registered", {"customer_id": "C-1", "name": "Jane", "email": "j@x.io", "tier": "Bronze"}),
        (
            "customer.tier-upgraded",
            {
                "event_id": "e-1",
                "customer_id": "C-1",
                "customer_name": "Jane",
                "old_tier": "Bronze",
                "new_tier": "Silver",
                "points": 100,
                "direction": "upgrade",
            },
        ),
        ("inventory.updated", {"lowStock": 3, "totalItems": 90}),
        ("transaction.recorded", {"cashFlow": 75.25}),
    )

    metrics = _today()
    assert metrics.sales_count == 1
    assert metrics.revenue == 120.0
    assert metrics.new_customers == 1
    assert metrics.tier_upgrades == 1
    assert metrics.low_stock_count == 3
    assert metrics.total_items == 90
    assert metrics.cash_flow == 75.25
    assert metrics.events_processed == 5
    assert len(recent_events(limit=10)) == 5


def test_redelivered_sale_is_counted_once(channel):
    sale = {"sale_id": "S-1", "total": 10.0}
    _publish_all(channel, ("sale.completed", sale), ("sale.completed", dict(sale)))

    assert _today().sales_count == 1


def test_malformed_message_is_dead_lettered(channel, transport):
    _publish_all(channel, ("transaction.recorded", {"cashFlow": "plenty"}))

    [dead] = transport.messages("transaction.recorded.dlq")
    assert dead.headers["x-consumer-group"] == CONSUMER_GROUP
    assert dead.headers["x-deliveries"] == "1"
    assert _today().events_processed == 0


class TestIdempotencyKey:
    def test_sale_uses_sale_id(self):
        message = Message(topic="sale.completed", payload={"sale_id": "S-9", "total": 1})
        contract = SaleCompleted.model_validate(message.payload)
        assert idempotency_key(message, contract) == "sale.completed:S-9"

    def test_other_topics_use_message_id(self):
        message = Message(topic="inventory.updated", payload={})
        assert idempotency_key(message, None) == f"inventory.updated:{message.message_id}"
