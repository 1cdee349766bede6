"""Dashboard bounded context: rolling daily counters fed by the event channel.

Consumes ``sale.completed``, ``customer.registered``,
``customer.tier-upgraded``, ``inventory.updated`` and
``transaction.recorded``, and keeps a per-day metrics row plus a log of
recently processed events.
"""

from protean.domain import Domain

from shared.logging import get_logger

dashboard = Domain(name="dashboard")

logger = get_logger(__name__)
