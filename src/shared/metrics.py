"""Prometheus counters for the loyalty pipeline and the event channel."""

from prometheus_client import Counter

messages_published = Counter(
    "channel_messages_published_total",
    "Messages successfully handed to the channel transport",
    ["topic"],
)

publish_failures = Counter(
    "channel_publish_failures_total",
    "Publishes abandoned after exhausting the retry budget",
    ["topic"],
)

messages_redelivered = Counter(
    "channel_messages_redelivered_total",
    "Handler attempts retried after a failure or timeout",
    ["topic", "group"],
)

messages_dead_lettered = Counter(
    "channel_messages_dead_lettered_total",
    "Messages moved to a dead-letter topic",
    ["topic", "group"],
)

sales_skipped = Counter(
    "loyalty_sales_skipped_total",
    "sale.completed messages acknowledged without a customer_id",
)

tier_changes = Counter(
    "loyalty_tier_changes_total",
    "Tier transitions committed by the customer account aggregate",
    ["direction"],
)

conflicts = Counter(
    "loyalty_conflicts_total",
    "Optimistic concurrency conflicts that exhausted their retries",
)
