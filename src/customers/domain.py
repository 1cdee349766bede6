"""Customers bounded context: customer accounts, loyalty points and tiers.

Owns the customer account aggregate, which is the only writer of a
customer's points balance and tier. Consumes ``sale.completed`` from the
event channel and publishes ``customer.tier-upgraded`` and
``customer.registered``.
"""

from protean.domain import Domain

from shared.logging import get_logger

customers = Domain(name="customers")

logger = get_logger(__name__)
