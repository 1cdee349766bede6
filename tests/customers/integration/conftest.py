import pytest
from customers.accounts import LoyaltyAccounts
from customers.domain import customers
from shared.channel import ChannelSettings, EventChannel
from shared.channel.memory_adapter import InMemoryTransport


@pytest.fixture()
def transport():
    return InMemoryTransport()


@pytest.fixture()
def channel(transport):
    settings = ChannelSettings(
        publish_attempts=2,
        publish_backoff=0.001,
        publish_backoff_max=0.001,
        max_deliveries=3,
        redelivery_backoff=0.001,
        redelivery_backoff_max=0.001,
        handler_timeout=5.0,
        poll_timeout=0.05,
        consumer_name="test-worker",
    )
    return EventChannel(transport, settings)


@pytest.fixture()
def accounts(channel):
    return LoyaltyAccounts(customers, channel, conflict_attempts=3, conflict_backoff=0.001)
