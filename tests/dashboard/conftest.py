import pytest


@pytest.fixture(autouse=True)
def _ctx(dashboard_bed):
    with dashboard_bed.domain_context():
        yield
