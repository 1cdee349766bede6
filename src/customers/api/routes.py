"""FastAPI routes for the Customers domain.

Mutations go through ``LoyaltyAccounts`` so they share the per-customer
serialization and post-commit publishing of the event consumers. Reads go
straight to the repositories.
"""

from fastapi import APIRouter, Depends, Query, Request
from protean.utils.globals import current_domain

from customers.accounts import LoyaltyAccounts, customer_snapshot
from customers.api.schemas import (
    ActivityData,
    ActivityListResponse,
    AdjustPointsRequest,
    AnalyticsData,
    AnalyticsResponse,
    CustomerData,
    CustomerListResponse,
    CustomerResponse,
    LoyaltyTierData,
    LoyaltyTiersResponse,
    PointsOutcomeData,
    PointsOutcomeResponse,
    ReconciliationData,
    ReconciliationResponse,
    RegisterCustomerRequest,
    UpdateCustomerRequest,
)
from customers.customer.customer import Customer, LoyaltyOutcome
from customers.loyalty.tiers import active_tier_table
from customers.projections.customer_directory import customer_analytics, list_customers

router = APIRouter(prefix="/customers", tags=["customers"])


def get_accounts(request: Request) -> LoyaltyAccounts:
    return request.app.state.accounts


def _load_customer(customer_id: str) -> Customer:
    return current_domain.repository_for(Customer).get(customer_id)


def _directory_data(row) -> CustomerData:
    table = active_tier_table()
    return CustomerData(
        id=str(row.customer_id),
        name=row.name,
        email=row.email,
        phone=row.phone,
        total_spent=row.total_spent or 0.0,
        points=row.points or 0,
        tier=row.tier,
        discount_rate=table.get(row.tier).discount_rate if row.tier in table else 0.0,
        is_active=row.is_active,
        registered_at=row.registered_at.isoformat() if row.registered_at else None,
        updated_at=row.updated_at.isoformat() if row.updated_at else None,
    )


def _outcome_data(outcome: LoyaltyOutcome) -> PointsOutcomeData:
    return PointsOutcomeData(
        customer_id=outcome.customer_id,
        points_added=outcome.points_added,
        old_points=outcome.old_points,
        new_points=outcome.new_points,
        old_tier=outcome.old_tier,
        new_tier=outcome.new_tier,
        tier_changed=outcome.tier_changed,
        direction=outcome.notification.direction if outcome.notification else None,
    )


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------
@router.post("", status_code=201, response_model=CustomerResponse)
async def register_customer(
    body: RegisterCustomerRequest,
    accounts: LoyaltyAccounts = Depends(get_accounts),
) -> CustomerResponse:
    snapshot = await accounts.register(name=body.name, email=body.email, phone=body.phone)
    return CustomerResponse(message="Customer registered successfully", data=CustomerData(**snapshot))


@router.get("", response_model=CustomerListResponse)
async def get_customers(
    is_active: bool | None = None,
    tier: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> CustomerListResponse:
    rows, total = list_customers(is_active=is_active, tier=tier, limit=limit, offset=offset)
    data = [_directory_data(row) for row in rows]
    return CustomerListResponse(count=len(data), total=total, data=data)


@router.get("/loyalty", response_model=LoyaltyTiersResponse)
async def get_loyalty_tiers() -> LoyaltyTiersResponse:
    return LoyaltyTiersResponse(data=[LoyaltyTierData(**tier) for tier in active_tier_table().as_list()])


@router.get("/analytics", response_model=AnalyticsResponse)
async def get_customer_analytics() -> AnalyticsResponse:
    analytics = customer_analytics([tier.name for tier in active_tier_table()])
    return AnalyticsResponse(data=AnalyticsData(**analytics))


@router.post("/maintenance/reconcile-tiers", response_model=ReconciliationResponse)
async def reconcile_tiers(accounts: LoyaltyAccounts = Depends(get_accounts)) -> ReconciliationResponse:
    report = await accounts.reconcile_tiers()
    return ReconciliationResponse(data=ReconciliationData(**report))


# ---------------------------------------------------------------------------
# Single customer
# ---------------------------------------------------------------------------
@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(customer_id: str) -> CustomerResponse:
    return CustomerResponse(data=CustomerData(**customer_snapshot(_load_customer(customer_id))))


@router.put("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: str,
    body: UpdateCustomerRequest,
    accounts: LoyaltyAccounts = Depends(get_accounts),
) -> CustomerResponse:
    await accounts.update(
        customer_id,
        name=body.name,
        email=body.email,
        phone=body.phone,
        clear_phone="phone" in body.model_fields_set and body.phone is None,
    )
    return CustomerResponse(
        message="Customer updated successfully",
        data=CustomerData(**customer_snapshot(_load_customer(customer_id))),
    )


@router.delete("/{customer_id}", response_model=CustomerResponse)
async def deactivate_customer(
    customer_id: str,
    accounts: LoyaltyAccounts = Depends(get_accounts),
) -> CustomerResponse:
    await accounts.deactivate(customer_id)
    return CustomerResponse(
        message="Customer deactivated successfully",
        data=CustomerData(**customer_snapshot(_load_customer(customer_id))),
    )


@router.post("/{customer_id}/points", response_model=PointsOutcomeResponse)
async def adjust_points(
    customer_id: str,
    body: AdjustPointsRequest,
    accounts: LoyaltyAccounts = Depends(get_accounts),
) -> PointsOutcomeResponse:
    outcome = await accounts.adjust_points(customer_id, delta=body.delta, reason=body.reason)
    return PointsOutcomeResponse(message="Points adjusted", data=_outcome_data(outcome))


@router.get("/{customer_id}/events", response_model=ActivityListResponse)
async def get_customer_events(customer_id: str) -> ActivityListResponse:
    customer = _load_customer(customer_id)
    entries = sorted(customer.activities, key=lambda entry: entry.created_at, reverse=True)
    data = [
        ActivityData(
            id=str(entry.id),
            event_type=entry.event_type,
            idempotency_key=entry.idempotency_key,
            payload=entry.payload or {},
            created_at=entry.created_at.isoformat() if entry.created_at else None,
        )
        for entry in entries
    ]
    return ActivityListResponse(count=len(data), data=data)

