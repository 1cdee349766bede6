"""Customers service load test scenarios.

Stateful SequentialTaskSet journeys covering registration, manual point
adjustments that drive tier transitions, and account deactivation. Steps
execute in order; each depends on the previous step succeeding.
"""

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import points_adjustment, profile_update, registration_data
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import CustomerState


class _CustomerJourney(SequentialTaskSet):
    def on_start(self):
        self.state = CustomerState()

    def register(self, with_phone: bool = True):
        with self.client.post(
            "/customers",
            json=registration_data(with_phone=with_phone),
            catch_response=True,
            name="POST /customers",
        ) as resp:
            if resp.status_code == 201:
                data = resp.json()["data"]
                self.state.customer_id = data["id"]
                self.state.current_tier = data["tier"]
            else:
                resp.failure(f"Registration failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    def adjust(self, payload: dict):
        with self.client.post(
            f"/customers/{self.state.customer_id}/points",
            json=payload,
            catch_response=True,
            name="POST /customers/{id}/points",
        ) as resp:
            if resp.status_code == 200:
                data = resp.json()["data"]
                self.state.points = data["new_points"]
                self.state.current_tier = data["new_tier"]
                if data["tier_changed"]:
                    self.state.tier_changes += 1
            elif resp.status_code == 409:
                # Another writer got there first; the adjustment is safe to skip
                resp.success()
            else:
                resp.failure(f"Points adjustment failed: {resp.status_code}: {extract_error_detail(resp)}")


class NewCustomerJourney(_CustomerJourney):
    """Register -> Update Profile -> Adjust Points -> Read Account -> Read Activity."""

    @task
    def register_customer(self):
        self.register()

    @task
    def update_profile(self):
        with self.client.put(
            f"/customers/{self.state.customer_id}",
            json=profile_update(),
            catch_response=True,
            name="PUT /customers/{id}",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Update profile failed: {resp.status_code}: {extract_error_detail(resp)}")

    @task
    def welcome_bonus(self):
        self.adjust({"delta": 25, "reason": "Welcome bonus"})

    @task
    def read_account(self):
        with self.client.get(
            f"/customers/{self.state.customer_id}",
            catch_response=True,
            name="GET /customers/{id}",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Read customer failed: {resp.status_code}: {extract_error_detail(resp)}")
            elif resp.json()["data"]["points"] != self.state.points:
                resp.failure("Points on the account do not match the last adjustment")

    @task
    def read_activity(self):
        with self.client.get(
            f"/customers/{self.state.customer_id}/events",
            catch_response=True,
            name="GET /customers/{id}/events",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Read activity failed: {resp.status_code}: {extract_error_detail(resp)}")

    @task
    def done(self):
        self.interrupt()


class TierProgressionJourney(_CustomerJourney):
    """Register -> five adjustments, pushing the customer through the tiers.

    Each adjustment that crosses a threshold publishes a tier change on the
    event channel, so this journey also loads the dashboard consumer.
    """

    @task
    def register_customer(self):
        self.register(with_phone=False)

    @task(5)
    def adjust_points(self):
        self.adjust(points_adjustment())

    @task
    def done(self):
        self.interrupt()


class AccountLifecycleJourney(_CustomerJourney):
    """Register -> Adjust -> Deactivate -> Adjust while inactive.

    Deactivated accounts keep accruing points, so the last adjustment must
    still succeed.
    """

    @task
    def register_customer(self):
        self.register()

    @task
    def adjust_points(self):
        self.adjust(points_adjustment(allow_negative=False))

    @task
    def deactivate(self):
        with self.client.delete(
            f"/customers/{self.state.customer_id}",
            catch_response=True,
            name="DELETE /customers/{id}",
        ) as resp:
            if resp.status_code == 200:
                self.state.is_active = False
            else:
                resp.failure(f"Deactivation failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def adjust_while_inactive(self):
        self.adjust(points_adjustment(allow_negative=False))

    @task
    def done(self):
        self.interrupt()


class CustomerBrowsing(SequentialTaskSet):
    """Back-office reads: directory page, tier table, analytics."""

    @task
    def list_customers(self):
        with self.client.get(
            "/customers",
            params={"limit": 20},
            catch_response=True,
            name="GET /customers",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"List customers failed: {resp.status_code}: {extract_error_detail(resp)}")

    @task
    def loyalty_tiers(self):
        with self.client.get("/customers/loyalty", catch_response=True, name="GET /customers/loyalty") as resp:
            if resp.status_code != 200:
                resp.failure(f"Tier table failed: {resp.status_code}: {extract_error_detail(resp)}")

    @task
    def analytics(self):
        with self.client.get("/customers/analytics", catch_response=True, name="GET /customers/analytics") as resp:
            if resp.status_code != 200:
                resp.failure(f"Analytics failed: {resp.status_code}: {extract_error_detail(resp)}")

    @task
    def done(self):
        self.interrupt()


class CustomersUser(HttpUser):
    """Customers service traffic on its own."""

    wait_time = between(0.5, 2.0)
    tasks = {
        NewCustomerJourney: 5,
        TierProgressionJourney: 3,
        AccountLifecycleJourney: 1,
        CustomerBrowsing: 2,
    }
