import pytest
from pydantic import ValidationError
from shared.contracts import (
    TOPIC_CONTRACTS,
    CustomerTierUpgraded,
    InventoryUpdated,
    SaleCompleted,
    TransactionRecorded,
    dead_letter_topic,
)


class TestSaleCompleted:
    def test_minimal_sale(self):
        sale = SaleCompleted.model_validate({"sale_id": "S-1", "customer_id": "C-1", "total": 99.5})
        assert sale.sale_id == "S-1"
        assert sale.customer_id == "C-1"
        assert sale.total == 99.5

    def test_legacy_id_field(self):
        sale = SaleCompleted.model_validate({"id": 42, "total": 10})
        assert sale.sale_id == "42"

    def test_guest_sale_has_no_customer(self):
        assert SaleCompleted.model_validate({"sale_id": "S-1", "total": 10}).customer_id is None

    def test_numeric_customer_id_is_coerced(self):
        assert SaleCompleted.model_validate({"sale_id": "S-1", "customer_id": 7, "total": 1}).customer_id == "7"

    def test_unknown_fields_are_ignored(self):
        sale = SaleCompleted.model_validate({"sale_id": "S-1", "total": 1, "channel": "web"})
        assert not hasattr(sale, "channel")

    @pytest.mark.parametrize("payload", [{"sale_id": "S-1"}, {"total": 10}, {"sale_id": "S-1", "total": "lots"}])
    def test_invalid_payloads(self, payload):
        with pytest.raises(ValidationError):
            SaleCompleted.model_validate(payload)


def test_tier_message_payload_is_json_ready():
    payload = CustomerTierUpgraded(
        event_id="e-1",
        customer_id="C-1",
        customer_name="Jane",
        old_tier="Bronze",
        new_tier="Silver",
        points=100,
        direction="upgrade",
    ).to_payload()
    assert isinstance(payload["timestamp"], str)
    assert payload["new_tier"] == "Silver"


def test_camel_case_spellings():
    assert InventoryUpdated.model_validate({"lowStock": 3, "totalItems": 120}).low_stock == 3
    assert TransactionRecorded.model_validate({"cashFlow": -25.5}).cash_flow == -25.5


def test_every_dashboard_topic_has_a_contract():
    assert set(TOPIC_CONTRACTS) == {
        "sale.completed",
        "customer.tier-upgraded",
        "customer.registered",
        "inventory.updated",
        "transaction.recorded",
    }


def test_dead_letter_topic():
    assert dead_letter_topic("sale.completed") == "sale.completed.dlq"
