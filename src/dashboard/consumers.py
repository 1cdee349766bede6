"""Event channel consumers for the dashboard service."""

import asyncio
from datetime import UTC, datetime

import structlog
from protean.domain import Domain
from protean.exceptions import ValidationError
from pydantic import ValidationError as ContractError

from dashboard.metrics.recording import RecordChannelEvent
from shared.channel import EventChannel, Message
from shared.contracts import (
    CUSTOMER_REGISTERED,
    CUSTOMER_TIER_UPGRADED,
    INVENTORY_UPDATED,
    SALE_COMPLETED,
    TOPIC_CONTRACTS,
    TRANSACTION_RECORDED,
)

logger = structlog.get_logger(__name__)

CONSUMER_GROUP = "dashboard-service"

TOPICS = (
    SALE_COMPLETED,
    CUSTOMER_REGISTERED,
    CUSTOMER_TIER_UPGRADED,
    INVENTORY_UPDATED,
    TRANSACTION_RECORDED,
)

NON_RETRYABLE = (ContractError, ValidationError)


def idempotency_key(message: Message, contract) -> str:
    """The business identity of a message, falling back to its message id."""
    if message.topic == SALE_COMPLETED:
        return f"{message.topic}:{contract.sale_id}"
    if message.topic == CUSTOMER_TIER_UPGRADED:
        return f"{message.topic}:{contract.event_id}"
    if message.topic == CUSTOMER_REGISTERED:
        return f"{message.topic}:{contract.customer_id}"
    return f"{message.topic}:{message.message_id}"


class DashboardConsumer:
    def __init__(self, domain: Domain):
        self.domain = domain

    async def __call__(self, message: Message) -> None:
        contract = TOPIC_CONTRACTS[message.topic].model_validate(message.payload)
        command = RecordChannelEvent(
            event_key=idempotency_key(message, contract),
            topic=message.topic,
            body=message.payload,
            received_at=datetime.now(UTC),
        )
        counted = await asyncio.to_thread(self._process, command)
        logger.debug("dashboard_event_processed", topic=message.topic, event_key=command.event_key, counted=counted)

    def _process(self, command):
        with self.domain.domain_context():
            return self.domain.process(command, asynchronous=False)


def register_consumers(channel: EventChannel, domain: Domain) -> DashboardConsumer:
    consumer = DashboardConsumer(domain)
    for topic in TOPICS:
        channel.subscribe(topic, consumer, group=CONSUMER_GROUP, non_retryable=NON_RETRYABLE)
    return consumer
