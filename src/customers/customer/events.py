"""Domain events for the Customer aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from customers.domain import customers


@customers.event(part_of="Customer")
class CustomerRegistered:
    """A new customer account was opened with zero points in the lowest tier."""

    __version__ = 1

    customer_id: Identifier(required=True)
    name: String(required=True)
    email: String(required=True)
    phone: String()
    tier: String(required=True)
    registered_at: DateTime(required=True)


@customers.event(part_of="Customer")
class CustomerUpdated:
    """Contact details of a customer changed. Carries the full new details."""

    __version__ = 1

    customer_id: Identifier(required=True)
    name: String(required=True)
    email: String(required=True)
    phone: String()
    updated_at: DateTime(required=True)


@customers.event(part_of="Customer")
class CustomerDeactivated:
    """A customer account was soft-deleted."""

    __version__ = 1

    customer_id: Identifier(required=True)
    deactivated_at: DateTime(required=True)


@customers.event(part_of="Customer")
class PointsAdded:
    """Points were awarded for a completed sale."""

    __version__ = 1

    customer_id: Identifier(required=True)
    sale_id: String(required=True)
    sale_amount: Float(required=True)
    points_added: Integer(required=True)
    old_points: Integer(required=True)
    new_points: Integer(required=True)
    total_spent: Float(required=True)
    tier: String(required=True)
    added_at: DateTime(required=True)


@customers.event(part_of="Customer")
class PointsAdjusted:
    """An administrator changed a customer's points balance."""

    __version__ = 1

    customer_id: Identifier(required=True)
    delta: Integer(required=True)
    reason: String(required=True)
    old_points: Integer(required=True)
    new_points: Integer(required=True)
    tier: String(required=True)
    adjusted_at: DateTime(required=True)


@customers.event(part_of="Customer")
class TierChanged:
    """A customer moved to another loyalty tier.

    ``reconciled`` marks transitions found by the reconciliation sweep
    rather than caused by a points change.
    """

    __version__ = 1

    customer_id: Identifier(required=True)
    event_id: String(required=True)
    customer_name: String(required=True)
    old_tier: String(required=True)
    new_tier: String(required=True)
    points: Integer(required=True)
    direction: String(required=True)
    reconciled: Boolean(default=False)
    changed_at: DateTime(required=True)
