"""Stress test scenarios for optimistic concurrency and channel saturation.

HotAccountUser piles point adjustments onto a handful of shared accounts to
exercise the version check and its bounded retry. RegistrationFloodUser
generates registrations as fast as possible, each publishing a
``customer.registered`` message for the dashboard.
"""

import random

from locust import HttpUser, constant_pacing, task

from loadtests.data_generators import points_adjustment, registration_data
from loadtests.helpers.response import extract_error_detail


class HotAccountUser(HttpUser):
    """Stress test: many writers on the same few accounts.

    409 responses are expected under contention and counted as failures so
    the conflict rate shows in the Locust report. Monitor:
    loyalty_conflicts_total should rise, while
    successful adjustments keep every balance consistent with its history.
    """

    wait_time = constant_pacing(0.05)  # ~20 requests/sec per user
    hot_accounts = 3
    customer_ids: list[str] = []

    def on_start(self):
        # Class-level pool, shared by every HotAccountUser
        while len(HotAccountUser.customer_ids) < self.hot_accounts:
            resp = self.client.post("/customers", json=registration_data(), name="[STRESS] POST /customers (hot)")
            if resp.status_code != 201:
                break
            HotAccountUser.customer_ids.append(resp.json()["data"]["id"])

    @task
    def adjust_hot_account(self):
        if not HotAccountUser.customer_ids:
            return
        customer_id = random.choice(HotAccountUser.customer_ids)
        with self.client.post(
            f"/customers/{customer_id}/points",
            json=points_adjustment(),
            catch_response=True,
            name="[STRESS] POST /customers/{id}/points",
        ) as resp:
            if resp.status_code not in (200, 409):
                resp.failure(f"Adjustment failed: {resp.status_code}: {extract_error_detail(resp)}")
            elif resp.status_code == 409:
                resp.failure("Concurrency conflict")


class RegistrationFloodUser(HttpUser):
    """Stress test: maximum registration throughput.

    Every request creates a new aggregate, so there is no contention. Each
    one fans out a message to the dashboard consumer.
    """

    wait_time = constant_pacing(0.1)  # ~10 requests/sec per user

    @task
    def register_customer(self):
        self.client.post("/customers", json=registration_data(with_phone=False), name="[STRESS] POST /customers")
