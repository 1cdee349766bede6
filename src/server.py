"""Channel worker for the LoyaltyStream services.

Runs the channel consumers outside the web process:
- customers: applies ``sale.completed`` to loyalty accounts and periodically
  reconciles tiers, republishing tier changes whose notification was lost
- dashboard: counts every dashboard topic into the daily metrics

Usage:
    python src/server.py                       # Run both services
    python src/server.py --domain customers    # Run only the loyalty consumer
    python src/server.py --domain dashboard    # Run only the dashboard consumer
"""

import argparse
import asyncio
import os
import signal

import structlog

from shared.channel import build_channel
from shared.logging import configure_logging

logger = structlog.get_logger(__name__)


async def _reconcile_periodically(accounts, interval: float):
    while True:
        await asyncio.sleep(interval)
        try:
            await accounts.reconcile_tiers()
        except Exception:
            logger.exception("tier_reconciliation_failed")


async def run(domain_names, reconcile_interval: float):
    channel = build_channel()
    background = []

    if "customers" in domain_names:
        from customers.accounts import LoyaltyAccounts
        from customers.consumers import register_consumers
        from customers.domain import customers
        from customers.loyalty.definitions import load_tier_table
        from customers.loyalty.tiers import install_tier_table

        customers.init()
        install_tier_table(load_tier_table(customers))
        accounts = LoyaltyAccounts(customers, channel)
        register_consumers(channel, accounts)
        if reconcile_interval > 0:
            background.append(_reconcile_periodically(accounts, reconcile_interval))

    if "dashboard" in domain_names:
        from dashboard.consumers import register_consumers
        from dashboard.domain import dashboard

        dashboard.init()
        register_consumers(channel, dashboard)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with channel:
        await channel.start()
        tasks = [asyncio.create_task(coro) for coro in background]
        logger.info("worker_started", domains=list(domain_names))
        await stop.wait()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    logger.info("worker_stopped")


def main():
    parser = argparse.ArgumentParser(description="LoyaltyStream channel worker")
    parser.add_argument(
        "--domain",
        choices=["customers", "dashboard"],
        help="Run a single domain's consumers (default: run all)",
    )
    parser.add_argument(
        "--reconcile-interval",
        type=float,
        default=float(os.getenv("RECONCILE_INTERVAL_SECONDS", "300")),
        help="Seconds between tier reconciliation sweeps, 0 disables (default: 300)",
    )
    args = parser.parse_args()

    domain_names = [args.domain] if args.domain else ["customers", "dashboard"]

    configure_logging()
    asyncio.run(run(domain_names, args.reconcile_interval))


if __name__ == "__main__":
    main()
