"""Cross-service message contracts carried over the event channel.

Each topic has a pydantic model describing its payload. Producers build a
model and publish ``model.to_payload()``; consumers validate incoming
payloads with ``Model.model_validate(payload)``. Unknown keys are ignored so
producers can add fields without breaking older consumers.
"""

from datetime import UTC, datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

SALE_COMPLETED = "sale.completed"
CUSTOMER_TIER_UPGRADED = "customer.tier-upgraded"
CUSTOMER_REGISTERED = "customer.registered"
INVENTORY_UPDATED = "inventory.updated"
TRANSACTION_RECORDED = "transaction.recorded"

DEAD_LETTER_SUFFIX = ".dlq"


def dead_letter_topic(topic: str) -> str:
    return f"{topic}{DEAD_LETTER_SUFFIX}"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Contract(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json")


class SaleCompleted(Contract):
    """A sale was recorded by the sales service.

    ``customer_id`` is optional: guest checkouts are not attributed to an
    account and carry no loyalty effect. The sales service historically
    serialized its primary key as ``id``; both spellings are accepted.
    """

    sale_id: str = Field(..., validation_alias=AliasChoices("sale_id", "id"))
    customer_id: str | None = None
    product_id: str | None = None
    quantity: int | None = None
    total: float
    date: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


class CustomerTierUpgraded(Contract):
    """A customer's tier changed. Downgrades travel on the same topic."""

    event_id: str
    customer_id: str
    customer_name: str
    old_tier: str
    new_tier: str
    points: int
    direction: str
    timestamp: datetime = Field(default_factory=_utcnow)


class CustomerRegisteredMessage(Contract):
    customer_id: str
    name: str
    email: str
    tier: str
    timestamp: datetime = Field(default_factory=_utcnow)


class InventoryUpdated(Contract):
    low_stock: int | None = Field(None, validation_alias=AliasChoices("low_stock", "lowStock"))
    total_items: int | None = Field(None, validation_alias=AliasChoices("total_items", "totalItems"))


class TransactionRecorded(Contract):
    cash_flow: float | None = Field(None, validation_alias=AliasChoices("cash_flow", "cashFlow"))


TOPIC_CONTRACTS: dict[str, type[Contract]] = {
    SALE_COMPLETED: SaleCompleted,
    CUSTOMER_TIER_UPGRADED: CustomerTierUpgraded,
    CUSTOMER_REGISTERED: CustomerRegisteredMessage,
    INVENTORY_UPDATED: InventoryUpdated,
    TRANSACTION_RECORDED: TransactionRecorded,
}
