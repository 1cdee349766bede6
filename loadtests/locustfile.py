"""LoyaltyStream Load Testing: Locust entry point.

Discovers all user classes from the scenarios package.
Run specific scenarios with Locust's class selection.

Usage:
    # All scenarios (web UI):
    locust -f loadtests/locustfile.py --host http://localhost:8000

    # Mixed workload only:
    locust -f loadtests/locustfile.py MixedWorkloadUser

    # Mixed workload plus sales traffic over Redis:
    locust -f loadtests/locustfile.py MixedWorkloadUser ChannelPublisherUser

    # Stress test:
    locust -f loadtests/locustfile.py HotAccountUser

    # Headless (CI mode):
    locust -f loadtests/locustfile.py MixedWorkloadUser --headless \
           -u 50 -r 5 -t 300s --csv=results/loadtest
"""

import logging
import time

import requests
from locust import events

# Import all user classes so Locust discovers them
from loadtests.helpers.response import extract_error_detail
from loadtests.scenarios.channel import ChannelPublisherUser  # noqa: F401
from loadtests.scenarios.customers import CustomersUser  # noqa: F401
from loadtests.scenarios.dashboard import DashboardUser  # noqa: F401
from loadtests.scenarios.mixed import MixedWorkloadUser  # noqa: F401
from loadtests.scenarios.stress import HotAccountUser, RegistrationFloodUser  # noqa: F401

logger = logging.getLogger("loadtest")

METRIC_PREFIXES = ("channel_", "loyalty_")


@events.request.add_listener
def on_request(request_type, name, response, exception, **_kw):
    """Log error details for every failed request.

    Fires globally for all scenarios, no per-task wiring needed.
    Extracts the API error body so you see "email: already registered"
    instead of just "400".
    """
    if exception:
        logger.error("[EXCEPTION] %s %s: %s", request_type, name, exception)
    elif response is not None and response.status_code >= 400:
        detail = extract_error_detail(response)
        logger.error("[%s] %s %s: %s", response.status_code, request_type, name, detail)


@events.test_start.add_listener
def on_test_start(environment, **_kwargs):
    """Log a marker when load test begins."""
    print(f"\n[LOADTEST] Started at {time.strftime('%H:%M:%S')}")
    print(f"[LOADTEST] Target host: {environment.host}")
    print()


@events.test_stop.add_listener
def on_test_stop(environment, **_kwargs):
    """Fetch and print the service's channel and loyalty metrics when the test ends."""
    print(f"\n[LOADTEST] Stopped at {time.strftime('%H:%M:%S')}")
    if not environment.host:
        return
    try:
        resp = requests.get(f"{environment.host}/metrics", timeout=5)
        lines = [
            line
            for line in resp.text.split("\n")
            if line.startswith(METRIC_PREFIXES) and not line.startswith("#")
        ]
        if lines:
            print("\n[LOADTEST] Final pipeline metrics:")
            for line in lines:
                print(f"  {line}")
        print()
    except requests.RequestException as e:
        print(f"[LOADTEST] Could not fetch metrics: {e}\n")
