"""LoyaltyStream database management CLI.

Provides commands to create and drop database schemas for both domains,
and to seed the loyalty tier table.

Usage:
    python src/manage.py setup-db                 # Create all tables
    python src/manage.py drop-db                  # Drop all tables
    python src/manage.py seed-tiers --overwrite   # Reset tiers to the defaults
"""

import argparse
import sys

DOMAIN_CHOICES = ["customers", "dashboard"]


def _domains(names=None):
    from customers.domain import customers
    from dashboard.domain import dashboard

    all_domains = {"customers": customers, "dashboard": dashboard}
    return {name: all_domains[name] for name in names} if names else all_domains


def setup_databases(domains=None):
    """Create database schemas for the specified (or all) domains."""
    from shared.db import setup_db

    for name, domain in _domains(domains).items():
        print(f"Initializing {name} domain...")
        domain.init()
        print(f"Creating {name} database schema...")
        setup_db(domain)
        print(f"  {name} schema ready.")

    print("Done.")


def drop_databases(domains=None):
    """Drop database schemas for the specified (or all) domains."""
    from shared.db import drop_db

    for name, domain in _domains(domains).items():
        print(f"Initializing {name} domain...")
        domain.init()
        print(f"Dropping {name} database schema...")
        drop_db(domain)
        print(f"  {name} schema dropped.")

    print("Done.")


def seed_tiers(overwrite=False):
    """Write the default loyalty tiers into the customers database."""
    from customers.domain import customers
    from customers.loyalty.definitions import SeedLoyaltyTiers

    print("Initializing customers domain...")
    customers.init()
    with customers.domain_context():
        written = customers.process(SeedLoyaltyTiers(overwrite=overwrite), asynchronous=False)
    print(f"  {written} tier(s) written.")

    print("Done.")


def main():
    parser = argparse.ArgumentParser(description="LoyaltyStream database management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    setup_parser = subparsers.add_parser("setup-db", help="Create all database tables")
    setup_parser.add_argument(
        "--domain",
        choices=DOMAIN_CHOICES,
        nargs="*",
        help="Specific domain(s) to set up (default: all)",
    )

    drop_parser = subparsers.add_parser("drop-db", help="Drop all database tables")
    drop_parser.add_argument(
        "--domain",
        choices=DOMAIN_CHOICES,
        nargs="*",
        help="Specific domain(s) to drop (default: all)",
    )

    seed_parser = subparsers.add_parser("seed-tiers", help="Seed the default loyalty tiers")
    seed_parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Replace existing tier rows with the defaults",
    )

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_databases(args.domain)
    elif args.command == "drop-db":
        drop_databases(args.domain)
    elif args.command == "seed-tiers":
        seed_tiers(args.overwrite)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
