"""Customer directory: a flat, queryable row per customer for listings and analytics."""

from protean.core.projector import on
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from customers.customer.customer import Customer
from customers.customer.events import (
    CustomerDeactivated,
    CustomerRegistered,
    CustomerUpdated,
    PointsAdded,
    PointsAdjusted,
    TierChanged,
)
from customers.domain import customers


@customers.projection
class CustomerDirectory:
    customer_id: Identifier(identifier=True, required=True)
    name: String(required=True, max_length=100)
    email: String(required=True, max_length=254)
    phone: String(max_length=20)
    points: Integer(default=0)
    tier: String(required=True, max_length=20)
    total_spent: Float(default=0.0)
    is_active: Boolean(default=True)
    registered_at: DateTime()
    updated_at: DateTime()


@customers.projector(projector_for=CustomerDirectory, aggregates=[Customer])
class CustomerDirectoryProjector:
    @on(CustomerRegistered)
    def on_customer_registered(self, event):
        current_domain.repository_for(CustomerDirectory).add(
            CustomerDirectory(
                customer_id=event.customer_id,
                name=event.name,
                email=event.email,
                phone=event.phone,
                points=0,
                tier=event.tier,
                total_spent=0.0,
                is_active=True,
                registered_at=event.registered_at,
                updated_at=event.registered_at,
            )
        )

    @on(CustomerUpdated)
    def on_customer_updated(self, event):
        repo = current_domain.repository_for(CustomerDirectory)
        row = repo.get(event.customer_id)
        row.name = event.name
        row.email = event.email
        row.phone = event.phone
        row.updated_at = event.updated_at
        repo.add(row)

    @on(CustomerDeactivated)
    def on_customer_deactivated(self, event):
        repo = current_domain.repository_for(CustomerDirectory)
        row = repo.get(event.customer_id)
        row.is_active = False
        row.updated_at = event.deactivated_at
        repo.add(row)

    @on(PointsAdded)
    def on_points_added(self, event):
        repo = current_domain.repository_for(CustomerDirectory)
        row = repo.get(event.customer_id)
        row.points = event.new_points
        row.tier = event.tier
        row.total_spent = event.total_spent
        row.updated_at = event.added_at
        repo.add(row)

    @on(PointsAdjusted)
    def on_points_adjusted(self, event):
        repo = current_domain.repository_for(CustomerDirectory)
        row = repo.get(event.customer_id)
        row.points = event.new_points
        row.tier = event.tier
        row.updated_at = event.adjusted_at
        repo.add(row)

    @on(TierChanged)
    def on_tier_changed(self, event):
        repo = current_domain.repository_for(CustomerDirectory)
        row = repo.get(event.customer_id)
        row.tier = event.new_tier
        row.updated_at = event.changed_at
        repo.add(row)


def list_customers(is_active=None, tier=None, limit=100, offset=0):
    """Directory rows, newest registrations first, with the total match count."""
    filters = {}
    if is_active is not None:
        filters["is_active"] = is_active
    if tier:
        filters["tier"] = tier

    query = current_domain.repository_for(CustomerDirectory)._dao.query
    if filters:
        query = query.filter(**filters)
    results = query.order_by("-registered_at").offset(offset).limit(limit).all()
    return results.items, results.total


def customer_analytics(tier_names):
    query = current_domain.repository_for(CustomerDirectory)._dao.query
    total = query.all().total
    active = query.filter(is_active=True).all().total
    return {
        "total_customers": total,
        "active_customers": active,
        "inactive_customers": total - active,
        "loyalty_distribution": {name: query.filter(tier=name).all().total for name in tier_names},
    }
