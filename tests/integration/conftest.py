"""Fixtures for cross-service tests.

The customers and dashboard domains run side by side over one in-memory
event channel, the way a single-process deployment wires them.
"""

import pytest
from shared.channel import ChannelSettings, EventChannel
from shared.channel.memory_adapter import InMemoryTransport


@pytest.fixture(autouse=True)
def _ctx(customers_bed, dashboard_bed):
    with customers_bed.domain_context(), dashboard_bed.domain_context():
        yield


@pytest.fixture()
def transport():
    return InMemoryTransport()


@pytest.fixture()
def channel(transport):
    return EventChannel(
        transport,
        ChannelSettings(
            publish_attempts=2,
            publish_backoff=0.001,
            publish_backoff_max=0.001,
            max_deliveries=3,
            redelivery_backoff=0.001,
            redelivery_backoff_max=0.001,
            poll_timeout=0.05,
            consumer_name="pipeline-test",
        ),
    )
