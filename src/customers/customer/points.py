"""Points accrual from sales and administrative adjustments: commands and handler."""

from protean import handle
from protean.fields import Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from customers.customer.customer import Customer
from customers.domain import customers


@customers.command(part_of="Customer")
class ApplySale:
    """Award points for a completed sale. Replays of the same sale are no-ops."""

    customer_id: Identifier(required=True)
    sale_id: String(required=True, max_length=255)
    amount: Float(required=True)


@customers.command(part_of="Customer")
class AdjustPoints:
    """Add or remove points outside of a sale, with a recorded reason."""

    customer_id: Identifier(required=True)
    delta: Integer(required=True)
    reason: String(required=True, max_length=255)


@customers.command_handler(part_of=Customer)
class LoyaltyPointsHandler:
    @handle(ApplySale)
    def apply_sale(self, command):
        repo = current_domain.repository_for(Customer)
        customer = repo.get(command.customer_id)
        outcome = customer.apply_sale(sale_id=command.sale_id, amount=command.amount)
        if not outcome.replayed:
            repo.add(customer)
        return outcome

    @handle(AdjustPoints)
    def adjust_points(self, command):
        repo = current_domain.repository_for(Customer)
        customer = repo.get(command.customer_id)
        outcome = customer.adjust_points(delta=command.delta, reason=command.reason)
        repo.add(customer)
        return outcome
