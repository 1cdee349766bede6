"""Customer registration: command and handler."""

from protean import handle
from protean.fields import String
from protean.utils.globals import current_domain

from customers.customer.customer import Customer
from customers.domain import customers


@customers.command(part_of="Customer")
class RegisterCustomer:
    """Open a customer account with zero points in the lowest tier."""

    name: String(required=True, max_length=100)
    email: String(required=True, max_length=254)
    phone: String(max_length=20)


@customers.command_handler(part_of=Customer)
class RegisterCustomerHandler:
    @handle(RegisterCustomer)
    def register_customer(self, command):
        customer = Customer.register(
            name=command.name,
            email=command.email,
            phone=command.phone,
        )
        current_domain.repository_for(Customer).add(customer)
        return str(customer.id)
