"""LoyaltyStream FastAPI application.

Serves the customers and dashboard APIs from one process. Commands run
synchronously inside the request; channel publishing happens after the
commit and never fails the request.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# Domains are initialized at module level so uvicorn workers share them.
# PROTEAN_ENV selects the config overlay from each domain's domain.toml.
from customers.domain import customers
from dashboard.domain import dashboard
from shared.logging import configure_logging
from webapp import create_app

configure_logging()

customers.init()
dashboard.init()

app = create_app()
