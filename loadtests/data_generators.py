"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that pass the domain's validation rules
(EmailAddress VO, PhoneNumber VO) and match the exact field names expected
by the API's Pydantic request schemas and the channel contracts.
"""

import random
import uuid
from datetime import UTC, datetime

from faker import Faker

fake = Faker()

# ---------- Customers ----------


def valid_email() -> str:
    """Generate emails that pass EmailAddress VO validation.

    A random suffix keeps them unique, since registration rejects an email
    already in use.
    """
    local = fake.user_name()[:20]
    domain = fake.free_email_domain()
    return f"{local}.{uuid.uuid4().hex[:6]}@{domain}"


def valid_phone() -> str:
    """Generate phones matching PhoneNumber VO regex: ^\\+?[\\d\\s\\-()]+$"""
    area = random.randint(200, 999)
    prefix = random.randint(200, 999)
    line = random.randint(1000, 9999)
    return f"+1-{area}-{prefix}-{line}"


def customer_name() -> str:
    return fake.name()[:100]


def registration_data(with_phone: bool = True) -> dict:
    data = {"name": customer_name(), "email": valid_email()}
    if with_phone:
        data["phone"] = valid_phone()
    return data


def profile_update() -> dict:
    """A partial update touching one or two profile fields."""
    choices = [
        {"name": customer_name()},
        {"phone": valid_phone()},
        {"email": valid_email()},
        {"name": customer_name(), "phone": valid_phone()},
    ]
    return random.choice(choices)


def points_adjustment(allow_negative: bool = True) -> dict:
    """Manual adjustments skew positive so customers climb tiers over a run."""
    if allow_negative and random.random() < 0.2:
        delta = -random.randint(1, 50)
        reason = random.choice(["Returned item", "Points expiry", "Correction"])
    else:
        delta = random.randint(10, 300)
        reason = random.choice(["Birthday bonus", "Survey reward", "Goodwill gesture", "Promotion"])
    return {"delta": delta, "reason": reason}


# ---------- Channel traffic ----------


def sale_payload(customer_id: str | None) -> dict:
    """A ``sale.completed`` payload. ``None`` simulates a guest checkout."""
    return {
        "sale_id": f"SALE-{uuid.uuid4().hex[:12]}",
        "customer_id": customer_id,
        "product_id": f"PRD-{random.randint(1, 500):04d}",
        "quantity": random.randint(1, 5),
        "total": round(random.uniform(5.0, 450.0), 2),
        "timestamp": datetime.now(UTC).isoformat(),
    }


def inventory_payload() -> dict:
    return {"low_stock": random.randint(0, 40), "total_items": random.randint(500, 20_000)}


def transaction_payload() -> dict:
    return {"cash_flow": round(random.uniform(-200.0, 1500.0), 2)}


# ---------- Dashboard ----------


def recent_date(max_days_back: int = 6) -> str:
    return fake.date_between(start_date=f"-{max_days_back}d", end_date="today").isoformat()
