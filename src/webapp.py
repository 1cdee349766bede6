"""FastAPI application factory for the customers and dashboard services.

Both domains must be initialized before ``create_app`` is called. Each
request is wrapped in the domain context matching its URL prefix, bounded by
a request timeout, and every error is rendered as
``{"success": false, "message": ...}``.
"""

import asyncio
import os
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from protean.exceptions import ObjectNotFoundError, ValidationError

from customers.accounts import LoyaltyAccounts
from customers.consumers import register_consumers as register_customer_consumers
from customers.domain import customers
from customers.loyalty.definitions import load_tier_table
from customers.loyalty.tiers import install_tier_table
from dashboard.consumers import register_consumers as register_dashboard_consumers
from dashboard.domain import dashboard
from shared.channel import ChannelSettings, EventChannel, TransportError, build_channel
from shared.errors import ConcurrencyConflict
from shared.logging import add_context, clear_context

logger = structlog.get_logger(__name__)

_ROUTE_DOMAIN_MAP = {
    "/customers": customers,
    "/dashboard": dashboard,
}


def _resolve_domain(path: str):
    """Return the domain for the given request path, or None."""
    for prefix, domain in _ROUTE_DOMAIN_MAP.items():
        if path.startswith(prefix):
            return domain
    return None


def error_message(exc: Exception) -> str:
    messages = getattr(exc, "messages", None)
    if isinstance(messages, dict):
        parts = []
        for field, errors in messages.items():
            errors = errors if isinstance(errors, list | tuple) else [errors]
            parts.append(f"{field}: {', '.join(str(error) for error in errors)}")
        return "; ".join(parts)
    if messages:
        return str(messages)
    return str(exc) or type(exc).__name__


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def create_app(
    channel: EventChannel | None = None,
    start_consumers: bool | None = None,
    request_timeout: float | None = None,
) -> FastAPI:
    """Build the HTTP application.

    ``start_consumers`` runs the channel consumers inside the web process;
    it defaults to on for the in-memory transport, where there is no
    separate worker to receive the messages.
    """
    settings = ChannelSettings.from_env()
    channel = channel or build_channel(settings)
    if start_consumers is None:
        start_consumers = settings.transport == "memory"
    if request_timeout is None:
        request_timeout = float(os.getenv("HTTP_REQUEST_TIMEOUT", "5"))

    accounts = LoyaltyAccounts(customers, channel)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        install_tier_table(load_tier_table(customers))
        try:
            await channel.connect()
        except TransportError as exc:
            # Publishing reconnects on demand; commits never wait on the broker
            logger.warning("channel_unavailable_at_startup", error=str(exc))

        if start_consumers:
            register_customer_consumers(channel, accounts)
            register_dashboard_consumers(channel, dashboard)
            await channel.start()

        yield

        await channel.close()

    app = FastAPI(
        title="LoyaltyStream API",
        description="Customer loyalty accounts and the back-office dashboard",
        lifespan=lifespan,
    )
    app.state.channel = channel
    app.state.accounts = accounts

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        """Push the correct Protean domain context for each request."""
        domain = _resolve_domain(request.url.path)
        if domain is not None:
            with domain.domain_context():
                response = await call_next(request)
            return response
        # No domain match: health check, metrics, docs
        return await call_next(request)

    @app.middleware("http")
    async def request_timeout_middleware(request: Request, call_next):
        try:
            return await asyncio.wait_for(call_next(request), timeout=request_timeout)
        except TimeoutError:
            logger.warning("request_timed_out", path=request.url.path, timeout=request_timeout)
            return _error(503, "The request took too long, try again")

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        """Tag every log line written while serving a request with its id and path."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        clear_context()
        add_context(request_id=request_id, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_context()
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error(400, error_message(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        details = [f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()]
        return _error(400, "; ".join(details))

    @app.exception_handler(ObjectNotFoundError)
    async def not_found_handler(request: Request, exc: ObjectNotFoundError):
        return _error(404, error_message(exc))

    @app.exception_handler(ConcurrencyConflict)
    async def conflict_handler(request: Request, exc: ConcurrencyConflict):
        return _error(409, str(exc))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_request_error", path=request.url.path)
        return _error(500, "Internal server error")

    from customers.api.routes import router as customers_router
    from dashboard.api.routes import router as dashboard_router

    app.include_router(customers_router)
    app.include_router(dashboard_router)

    @app.get("/health")
    async def health():
        return JSONResponse(
            content={
                "status": "ok",
                "channel": {"connected": channel.connected, "consuming": channel.running},
                "domains": {
                    "customers": {"name": customers.name},
                    "dashboard": {"name": dashboard.name},
                },
            }
        )

    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
