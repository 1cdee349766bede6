"""RecordChannelEvent command + handler: count one channel message, exactly once.

The dedup check and the counter update share a unit of work: the
``RealtimeEvent`` row keyed by the message's idempotency key is written
together with the day's metrics, so a redelivered message finds its row and
changes nothing.
"""

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Dict, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dashboard.domain import dashboard
from dashboard.metrics.daily_metrics import DailyMetrics, metrics_for
from dashboard.metrics.realtime_event import EVENT_SOURCES, RealtimeEvent
from shared.contracts import (
    CUSTOMER_REGISTERED,
    CUSTOMER_TIER_UPGRADED,
    INVENTORY_UPDATED,
    SALE_COMPLETED,
    TOPIC_CONTRACTS,
    TRANSACTION_RECORDED,
)

logger = structlog.get_logger(__name__)


@dashboard.command(part_of="DailyMetrics")
class RecordChannelEvent:
    event_key: String(required=True, max_length=255)
    topic: String(required=True, max_length=100)
    body: Dict()
    received_at: DateTime(required=True)


@dashboard.command_handler(part_of=DailyMetrics)
class RecordChannelEventHandler:
    @handle(RecordChannelEvent)
    def record(self, command: RecordChannelEvent):
        events = current_domain.repository_for(RealtimeEvent)
        try:
            events.get(command.event_key)
        except ObjectNotFoundError:
            pass
        else:
            logger.info("Dashboard event already counted", event_key=command.event_key, topic=command.topic)
            return False

        data = TOPIC_CONTRACTS[command.topic].model_validate(command.body or {})
        metrics = metrics_for(command.received_at.date().isoformat())

        if command.topic == SALE_COMPLETED:
            metrics.record_sale(data.total)
        elif command.topic == CUSTOMER_REGISTERED:
            metrics.record_new_customer()
        elif command.topic == CUSTOMER_TIER_UPGRADED:
            metrics.record_tier_change(data.direction)
        elif command.topic == INVENTORY_UPDATED:
            metrics.record_inventory(data.low_stock, data.total_items)
        elif command.topic == TRANSACTION_RECORDED:
            metrics.record_transaction(data.cash_flow)

        current_domain.repository_for(DailyMetrics).add(metrics)
        events.add(
            RealtimeEvent(
                event_key=command.event_key,
                event_type=command.topic,
                event_source=EVENT_SOURCES.get(command.topic, "unknown"),
                event_data=command.body or {},
                processed_at=command.received_at,
            )
        )
        return True
