"""Event channel load: the upstream services that only talk over Redis.

The upstream services never call the HTTP API; they append to Redis
streams. ``ChannelPublisherUser`` plays those services, writing messages in
the exact envelope the channel transport reads, and reports each append to
Locust as a ``REDIS`` request so it shows up in the stats table.

Requires ``CHANNEL_TRANSPORT=redis`` on the services under test and a
reachable ``REDIS_URL``.
"""

import os
import random
import time

import redis
import requests
from locust import User, between, task

from loadtests.data_generators import inventory_payload, registration_data, sale_payload, transaction_payload
from loadtests.helpers.state import SalesState
from shared.channel.port import Message
from shared.contracts import INVENTORY_UPDATED, SALE_COMPLETED, TRANSACTION_RECORDED

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
STREAM_MAXLEN = int(os.getenv("CHANNEL_STREAM_MAXLEN", "100000"))


class ChannelPublisherUser(User):
    """Publishes sale, inventory and transaction messages.

    Sales are attributed to a small pool of customers registered over HTTP
    in ``on_start``, so the pool climbs the tiers as the run goes on. About
    one sale in five is a guest checkout.
    """

    wait_time = between(0.1, 0.5)
    pool_size = 5

    def on_start(self):
        self.redis = redis.Redis.from_url(REDIS_URL, decode_responses=True)
        self.state = SalesState()
        self._register_pool()

    def on_stop(self):
        self.redis.close()

    def _register_pool(self):
        for _ in range(self.pool_size):
            resp = requests.post(f"{self.host}/customers", json=registration_data(), timeout=10)
            if resp.status_code == 201:
                self.state.customer_ids.append(resp.json()["data"]["id"])

    def _publish(self, topic: str, payload: dict, key: str | None = None):
        message = Message(topic=topic, payload=payload, key=key)
        started = time.perf_counter()
        exception = None
        try:
            self.redis.xadd(topic, {"data": message.to_json()}, maxlen=STREAM_MAXLEN, approximate=True)
        except redis.RedisError as exc:
            exception = exc
        self.environment.events.request.fire(
            request_type="REDIS",
            name=f"XADD {topic}",
            response_time=(time.perf_counter() - started) * 1000,
            response_length=0,
            response=None,
            context={},
            exception=exception,
        )

    @task(8)
    def sale(self):
        customer_id = None
        if self.state.customer_ids and random.random() >= 0.2:
            customer_id = random.choice(self.state.customer_ids)
        payload = sale_payload(customer_id)
        self._publish(SALE_COMPLETED, payload, key=customer_id or payload["sale_id"])

    @task(1)
    def inventory(self):
        self._publish(INVENTORY_UPDATED, inventory_payload())

    @task(1)
    def transaction(self):
        self._publish(TRANSACTION_RECORDED, transaction_payload())
