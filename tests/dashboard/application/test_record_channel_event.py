"""Application tests for counting channel messages via domain.process()."""

from datetime import UTC, datetime

import pytest
from dashboard.metrics.daily_metrics import DailyMetrics
from dashboard.metrics.realtime_event import RealtimeEvent
from dashboard.metrics.recording import RecordChannelEvent
from protean import current_domain
from protean.exceptions import ObjectNotFoundError
from pydantic import ValidationError as ContractError

RECEIVED_AT = datetime(2026, 3, 1, 14, 30, tzinfo=UTC)


def _record(topic, payload, event_key=None, received_at=RECEIVED_AT):
    return current_domain.process(
        RecordChannelEvent(
            event_key=event_key or f"{topic}:{len(payload)}",
            topic=topic,
            body=payload,
            received_at=received_at,
        ),
        asynchronous=False,
    )


def _day(date_key="2026-03-01"):
    return current_domain.repository_for(DailyMetrics).get(date_key)


class TestRecordChannelEvent:
    def test_command_carries_message_body(self):
        body = {"sale_id": "S-1", "total": 49.9}
        command = RecordChannelEvent(event_key="k", topic="sale.completed", body=body, received_at=RECEIVED_AT)

        assert command.body == body

    def test_sale_is_counted(self):
        assert _record("sale.completed", {"sale_id": "S-1", "total": 49.9}, "sale.completed:S-1") is True

        metrics = _day()
        assert metrics.sales_count == 1
        assert metrics.revenue == 49.9
        assert metrics.events_processed == 1

    def test_same_event_key_counts_once(self):
        payload = {"sale_id": "S-1", "total": 49.9}
        _record("sale.completed", payload, "sale.completed:S-1")

        assert _record("sale.completed", payload, "sale.completed:S-1") is False

        assert _day().sales_count == 1

    def test_realtime_event_is_logged(self):
        payload = {"customer_id": "C-1", "name": "Jane", "email": "j@x.io", "tier": "Bronze"}
        _record("customer.registered", payload, "k1")

        event = current_domain.repository_for(RealtimeEvent).get("k1")
        assert event.event_type == "customer.registered"
        assert event.event_source == "customer-service"
        assert event.event_data["customer_id"] == "C-1"

    def test_tier_directions(self):
        tier = {
            "customer_id": "C-1",
            "customer_name": "Jane",
            "old_tier": "Bronze",
            "new_tier": "Silver",
            "points": 100,
        }
        _record("customer.tier-upgraded", {**tier, "event_id": "e1", "direction": "upgrade"}, "e1")
        _record("customer.tier-upgraded", {**tier, "event_id": "e2", "direction": "downgrade"}, "e2")

        metrics = _day()
        assert metrics.tier_upgrades == 1
        assert metrics.tier_downgrades == 1

    def test_inventory_and_transactions(self):
        _record("inventory.updated", {"lowStock": 4, "totalItems": 250}, "i1")
        _record("transaction.recorded", {"cashFlow": 120.0}, "t1")
        _record("transaction.recorded", {"cash_flow": -20.0}, "t2")

        metrics = _day()
        assert metrics.low_stock_count == 4
        assert metrics.total_items == 250
        assert metrics.cash_flow == 100.0

    def test_days_are_kept_apart(self):
        _record("sale.completed", {"sale_id": "S-1", "total": 10}, "a", RECEIVED_AT)
        _record("sale.completed", {"sale_id": "S-2", "total": 20}, "b", datetime(2026, 3, 2, 0, 5, tzinfo=UTC))

        assert _day("2026-03-01").revenue == 10.0
        assert _day("2026-03-02").revenue == 20.0

    def test_invalid_payload_changes_nothing(self):
        with pytest.raises(ContractError):
            _record("sale.completed", {"sale_id": "S-1"}, "bad")

        with pytest.raises(ObjectNotFoundError):
            current_domain.repository_for(RealtimeEvent).get("bad")
