"""Dashboard load test scenarios.

The dashboard is read-only over HTTP, so these users only poll. Its write
load comes from the channel, see ``loadtests.scenarios.channel``.
"""

from locust import HttpUser, between, task

from loadtests.data_generators import recent_date
from loadtests.helpers.response import extract_error_detail


class DashboardUser(HttpUser):
    """A back-office screen refreshing its widgets."""

    wait_time = between(1.0, 3.0)

    def _get(self, path: str, name: str, params: dict | None = None):
        with self.client.get(path, params=params, catch_response=True, name=name) as resp:
            if resp.status_code != 200:
                resp.failure(f"{name} failed: {resp.status_code}: {extract_error_detail(resp)}")

    @task(5)
    def summary(self):
        self._get("/dashboard/summary", "GET /dashboard/summary")

    @task(2)
    def summary_for_day(self):
        self._get("/dashboard/summary", "GET /dashboard/summary?date", params={"date": recent_date()})

    @task(3)
    def sales(self):
        self._get("/dashboard/sales", "GET /dashboard/sales", params={"days": 7})

    @task(2)
    def customers(self):
        self._get("/dashboard/customers", "GET /dashboard/customers", params={"days": 7})

    @task(1)
    def inventory(self):
        self._get("/dashboard/inventory", "GET /dashboard/inventory")

    @task(1)
    def financial(self):
        self._get("/dashboard/financial", "GET /dashboard/financial", params={"days": 30})

    @task(4)
    def recent_events(self):
        self._get("/dashboard/events/recent", "GET /dashboard/events/recent", params={"limit": 50})
