"""Contact detail value objects: validated email address and phone number."""

import re

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import String

from customers.domain import customers


@customers.value_object
class EmailAddress:
    """A structurally valid email address.

    Exactly one @, non-empty local and domain parts, a dotted domain, no
    whitespace, no consecutive dots.
    """

    address: String(required=True, max_length=254)

    @invariant.post
    def verify_email_address(self):
        email = self.address
        if email is None:
            return

        invalid = ValidationError({"email": [f"Invalid email address: {email!r}"]})

        if any(ch.isspace() for ch in email) or email.count("@") != 1:
            raise invalid

        local_part, domain_part = email.split("@", 1)
        if not local_part or local_part.startswith(".") or local_part.endswith("."):
            raise invalid
        if not domain_part or "." not in domain_part or domain_part.startswith(".") or domain_part.endswith("."):
            raise invalid
        if ".." in email:
            raise invalid
        if any(label.startswith("-") or label.endswith("-") for label in domain_part.split(".")):
            raise invalid


@customers.value_object
class PhoneNumber:
    """Digits, spaces, hyphens, parentheses, and an optional leading +."""

    number: String(required=True, max_length=20)

    @invariant.post
    def validate_phone_format(self):
        number = self.number
        if number is None:
            return

        if not re.search(r"\d", number) or not re.match(r"^\+?[\d\s\-()]+$", number):
            raise ValidationError({"phone": [f"Invalid phone number: {number!r}"]})


def normalize_email(email: str) -> str:
    return EmailAddress(address=email.strip().lower()).address


def normalize_phone(phone: str | None) -> str | None:
    if phone is None or not phone.strip():
        return None
    return PhoneNumber(number=phone.strip()).number
