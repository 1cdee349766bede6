"""Customer contact details and deactivation: commands and handler."""

from protean import handle
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from customers.customer.customer import Customer
from customers.domain import customers


@customers.command(part_of="Customer")
class UpdateCustomer:
    """Change name, email or phone. Omitted fields keep their value."""

    customer_id: Identifier(required=True)
    name: String(max_length=100)
    email: String(max_length=254)
    phone: String(max_length=20)
    clear_phone: Boolean(default=False)


@customers.command(part_of="Customer")
class DeactivateCustomer:
    """Soft-delete a customer account."""

    customer_id: Identifier(required=True)


@customers.command_handler(part_of=Customer)
class ManageCustomerHandler:
    @handle(UpdateCustomer)
    def update_customer(self, command):
        repo = current_domain.repository_for(Customer)
        customer = repo.get(command.customer_id)

        updates = {}
        if command.name is not None:
            updates["name"] = command.name
        if command.email is not None:
            updates["email"] = command.email
        if command.phone is not None:
            updates["phone"] = command.phone
        elif command.clear_phone:
            updates["phone"] = None

        changes = customer.update_details(**updates)
        repo.add(customer)
        return changes

    @handle(DeactivateCustomer)
    def deactivate_customer(self, command):
        repo = current_domain.repository_for(Customer)
        customer = repo.get(command.customer_id)
        customer.deactivate()
        repo.add(customer)
