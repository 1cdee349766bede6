import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Selects the config overlay and keeps the event channel in-process.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ.setdefault("CHANNEL_TRANSPORT", "memory")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def customers_bed():
    from customers.domain import customers

    bed = DomainFixture(customers)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(scope="session")
def dashboard_bed():
    from dashboard.domain import dashboard

    bed = DomainFixture(dashboard)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _default_tiers():
    """Every test starts from the default tier table."""
    from customers.loyalty.tiers import DEFAULT_TIERS, install_tier_table

    install_tier_table(DEFAULT_TIERS)
    yield
    install_tier_table(DEFAULT_TIERS)
