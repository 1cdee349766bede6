"""Daily metrics aggregate, keyed by date (YYYY-MM-DD)."""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, Integer, String
from protean.utils.globals import current_domain

from dashboard.domain import dashboard


@dashboard.aggregate
class DailyMetrics:
    """Counters for one calendar day (UTC).

    Sales, registrations, tier changes and cash flow accumulate. Inventory
    figures are snapshots: the latest ``inventory.updated`` wins.
    """

    date: String(identifier=True, max_length=10)
    sales_count: Integer(default=0)
    revenue: Float(default=0.0)
    new_customers: Integer(default=0)
    tier_upgrades: Integer(default=0)
    tier_downgrades: Integer(default=0)
    low_stock_count: Integer(default=0)
    total_items: Integer(default=0)
    cash_flow: Float(default=0.0)
    events_processed: Integer(default=0)
    updated_at: DateTime()

    @classmethod
    def empty(cls, date_key: str) -> "DailyMetrics":
        return cls(
            date=date_key,
            sales_count=0,
            revenue=0.0,
            new_customers=0,
            tier_upgrades=0,
            tier_downgrades=0,
            low_stock_count=0,
            total_items=0,
            cash_flow=0.0,
            events_processed=0,
        )

    def record_sale(self, total: float) -> None:
        self.sales_count = (self.sales_count or 0) + 1
        self.revenue = round((self.revenue or 0.0) + (total or 0.0), 2)
        self._touch()

    def record_new_customer(self) -> None:
        self.new_customers = (self.new_customers or 0) + 1
        self._touch()

    def record_tier_change(self, direction: str) -> None:
        if direction == "downgrade":
            self.tier_downgrades = (self.tier_downgrades or 0) + 1
        else:
            self.tier_upgrades = (self.tier_upgrades or 0) + 1
        self._touch()

    def record_inventory(self, low_stock: int | None, total_items: int | None) -> None:
        if low_stock is not None:
            self.low_stock_count = low_stock
        if total_items is not None:
            self.total_items = total_items
        self._touch()

    def record_transaction(self, cash_flow: float | None) -> None:
        self.cash_flow = round((self.cash_flow or 0.0) + (cash_flow or 0.0), 2)
        self._touch()

    def _touch(self) -> None:
        self.events_processed = (self.events_processed or 0) + 1
        self.updated_at = datetime.now(UTC)

    def summary(self) -> dict:
        return {
            "date": self.date,
            "sales_count": self.sales_count or 0,
            "revenue": self.revenue or 0.0,
            "new_customers": self.new_customers or 0,
            "tier_upgrades": self.tier_upgrades or 0,
            "tier_downgrades": self.tier_downgrades or 0,
            "low_stock_count": self.low_stock_count or 0,
            "total_items": self.total_items or 0,
            "cash_flow": self.cash_flow or 0.0,
            "events_processed": self.events_processed or 0,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


def metrics_for(date_key: str) -> DailyMetrics:
    """Stored metrics for a day, or an unsaved zeroed row."""
    try:
        return current_domain.repository_for(DailyMetrics).get(date_key)
    except ObjectNotFoundError:
        return DailyMetrics.empty(date_key)
