import pytest


@pytest.fixture(autouse=True)
def _ctx(customers_bed):
    with customers_bed.domain_context():
        yield
