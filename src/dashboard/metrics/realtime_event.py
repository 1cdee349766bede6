"""Realtime event log: one row per channel message the dashboard has counted."""

from protean.fields import DateTime, Dict, String
from protean.utils.globals import current_domain

from dashboard.domain import dashboard

EVENT_SOURCES = {
    "sale.completed": "sales-service",
    "customer.registered": "customer-service",
    "customer.tier-upgraded": "customer-service",
    "inventory.updated": "inventory-service",
    "transaction.recorded": "accounting-service",
}


@dashboard.aggregate
class RealtimeEvent:
    """Keyed by the message's idempotency key, so a redelivery finds its earlier row."""

    event_key: String(identifier=True, max_length=255)
    event_type: String(required=True, max_length=100)
    event_source: String(required=True, max_length=50)
    event_data: Dict()
    processed_at: DateTime(required=True)

    def summary(self) -> dict:
        return {
            "event_key": self.event_key,
            "event_type": self.event_type,
            "event_source": self.event_source,
            "event_data": self.event_data or {},
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }


def recent_events(limit: int = 20, event_type: str | None = None) -> list[RealtimeEvent]:
    query = current_domain.repository_for(RealtimeEvent)._dao.query
    if event_type:
        query = query.filter(event_type=event_type)
    return query.order_by("-processed_at").limit(limit).all().items
