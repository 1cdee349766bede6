"""Event channel consumers for the customers service."""

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from pydantic import ValidationError as ContractError

from customers.accounts import LoyaltyAccounts
from shared import metrics
from shared.channel import EventChannel, Message
from shared.contracts import SALE_COMPLETED, SaleCompleted

logger = structlog.get_logger(__name__)

CONSUMER_GROUP = "customer-service"

# Redelivering these cannot succeed; they go straight to the dead-letter topic
NON_RETRYABLE = (ContractError, ValidationError, ObjectNotFoundError)


class SaleCompletedConsumer:
    """Awards loyalty points for ``sale.completed``.

    Guest sales without a ``customer_id`` are acknowledged and counted
    without touching any account.
    """

    def __init__(self, accounts: LoyaltyAccounts):
        self.accounts = accounts
        self.skipped = 0

    async def __call__(self, message: Message) -> None:
        sale = SaleCompleted.model_validate(message.payload)

        if not sale.customer_id:
            self.skipped += 1
            metrics.sales_skipped.inc()
            logger.warning("sale_without_customer_skipped", sale_id=sale.sale_id, message_id=message.message_id)
            return

        await self.accounts.apply_sale(sale.customer_id, sale.sale_id, sale.total)


def register_consumers(channel: EventChannel, accounts: LoyaltyAccounts) -> SaleCompletedConsumer:
    consumer = SaleCompletedConsumer(accounts)
    channel.subscribe(SALE_COMPLETED, consumer, group=CONSUMER_GROUP, non_retryable=NON_RETRYABLE)
    return consumer
