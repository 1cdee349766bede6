"""Mixed workload scenario.

Combines customer journeys and dashboard reads with weights that model a
normal business day. This is the recommended scenario for load baseline
testing. Pair it with ChannelPublisherUser when running against the Redis
transport to add sales traffic.
"""

from locust import HttpUser, between, task

from loadtests.data_generators import recent_date
from loadtests.helpers.response import extract_error_detail
from loadtests.scenarios.customers import (
    AccountLifecycleJourney,
    CustomerBrowsing,
    NewCustomerJourney,
    TierProgressionJourney,
)


class MixedWorkloadUser(HttpUser):
    """Realistic mixed workload across both services.

    Customers (70%):
    - Registration with a profile update and a welcome bonus: most common
    - Tier progression through manual adjustments
    - Deactivation: infrequent
    - Directory and analytics reads

    Dashboard (30%):
    - Summary widget refresh, dominant
    - Recent events feed
    - Trend pages for sales and customers

    Creates pressure on both domains at once, testing that each request is
    routed to the correct domain context under load.
    """

    wait_time = between(0.5, 3.0)
    tasks = {
        # Customers (70%)
        NewCustomerJourney: 30,
        TierProgressionJourney: 20,
        AccountLifecycleJourney: 5,
        CustomerBrowsing: 15,
    }

    def _dashboard(self, path: str, name: str, params: dict | None = None):
        with self.client.get(path, params=params, catch_response=True, name=name) as resp:
            if resp.status_code != 200:
                resp.failure(f"{name} failed: {resp.status_code}: {extract_error_detail(resp)}")

    # Dashboard (30%)

    @task(15)
    def dashboard_summary(self):
        self._dashboard("/dashboard/summary", "GET /dashboard/summary")

    @task(8)
    def dashboard_recent_events(self):
        self._dashboard("/dashboard/events/recent", "GET /dashboard/events/recent")

    @task(4)
    def dashboard_sales(self):
        self._dashboard("/dashboard/sales", "GET /dashboard/sales", params={"until": recent_date(0)})

    @task(3)
    def dashboard_customers(self):
        self._dashboard("/dashboard/customers", "GET /dashboard/customers")
