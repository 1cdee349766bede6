"""Tier reconciliation and notification bookkeeping: commands and handler.

``ReconcileTier`` repairs a tier that no longer matches the points balance
(after the tier table changed) and returns the repair, if any, along with
every transition of the customer that has not been published yet.
``ConfirmTierNotification`` records that a transition reached the event
channel.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from customers.customer.customer import Customer
from customers.domain import customers


@customers.command(part_of="Customer")
class ReconcileTier:
    customer_id: Identifier(required=True)


@customers.command(part_of="Customer")
class ConfirmTierNotification:
    customer_id: Identifier(required=True)
    event_id: String(required=True, max_length=64)


@customers.command_handler(part_of=Customer)
class TierMaintenanceHandler:
    @handle(ReconcileTier)
    def reconcile_tier(self, command):
        repo = current_domain.repository_for(Customer)
        customer = repo.get(command.customer_id)
        repaired = customer.reconcile_tier()
        if repaired is not None:
            repo.add(customer)
        return repaired, customer.pending_notifications()

    @handle(ConfirmTierNotification)
    def confirm_notification(self, command):
        repo = current_domain.repository_for(Customer)
        customer = repo.get(command.customer_id)
        if customer.confirm_notification(command.event_id):
            repo.add(customer)
            return True
        return False
