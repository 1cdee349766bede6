"""Shared BDD fixtures and step definitions for loyalty tiers."""

import pytest
from customers.customer.customer import Customer
from customers.customer.events import TierChanged
from pytest_bdd import given, parsers, then


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a registered customer", target_fixture="customer")
def registered_customer():
    customer = Customer.register(name="Test User", email="test@example.com")
    customer._events.clear()
    return customer


@given(parsers.cfparse("a registered customer with {points:d} points"), target_fixture="customer")
def registered_customer_with_points(points):
    customer = Customer.register(name="Test User", email="test@example.com")
    customer.adjust_points(points, "Opening balance")
    customer._events.clear()
    return customer


@given(parsers.cfparse('the sale "{sale_id}" of {amount:f} was already applied'))
def sale_already_applied(customer, sale_id, amount):
    customer.apply_sale(sale_id, amount)
    customer._events.clear()


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the customer has {points:d} points"))
def customer_has_points(customer, points):
    assert customer.points == points


@then(parsers.cfparse('the customer is in the "{tier}" tier'))
def customer_in_tier(customer, tier):
    assert customer.tier == tier


@then("no TierChanged event is raised")
def no_tier_event(customer):
    assert not any(isinstance(event, TierChanged) for event in customer._events)


@then(parsers.cfparse('a TierChanged event records an "{direction}" from "{old_tier}" to "{new_tier}"'))
@then(parsers.cfparse('a TierChanged event records a "{direction}" from "{old_tier}" to "{new_tier}"'))
def tier_event_recorded(customer, direction, old_tier, new_tier):
    [event] = [event for event in customer._events if isinstance(event, TierChanged)]
    assert event.direction == direction
    assert event.old_tier == old_tier
    assert event.new_tier == new_tier
