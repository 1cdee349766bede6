"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state, with no cross-user
sharing. State tracks the IDs returned by creation endpoints so follow-up
operations can reference them.
"""

from dataclasses import dataclass, field


@dataclass
class CustomerState:
    """Tracks state for a single simulated customer lifecycle."""

    customer_id: str | None = None
    points: int = 0
    current_tier: str = "Bronze"
    is_active: bool = True
    tier_changes: int = 0


@dataclass
class SalesState:
    """Customers a sales stream attributes its sales to."""

    customer_ids: list[str] = field(default_factory=list)
