"""FastAPI routes for the Dashboard domain. Read-only views over the daily metrics."""

from datetime import UTC, date, datetime, timedelta

from fastapi import APIRouter, Query
from protean.exceptions import ValidationError

from dashboard.api.schemas import (
    CustomerMetricsData,
    CustomerMetricsResponse,
    CustomerPoint,
    DailyMetricsData,
    FinancialData,
    FinancialPoint,
    FinancialResponse,
    InventoryData,
    InventoryResponse,
    RealtimeEventData,
    RecentEventsResponse,
    SalesData,
    SalesPoint,
    SalesResponse,
    SummaryResponse,
)
from dashboard.metrics.daily_metrics import metrics_for
from dashboard.metrics.realtime_event import recent_events

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _day(value: str | None) -> date:
    if value is None:
        return datetime.now(UTC).date()
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError({"date": [f"Expected YYYY-MM-DD, got {value!r}"]}) from exc


def _window(days: int, until: str | None) -> list[dict]:
    """Metrics for ``days`` consecutive days ending at ``until``, oldest first."""
    end = _day(until)
    return [metrics_for((end - timedelta(days=offset)).isoformat()).summary() for offset in range(days - 1, -1, -1)]


@router.get("/summary", response_model=SummaryResponse)
async def get_summary(day: str | None = Query(None, alias="date")) -> SummaryResponse:
    return SummaryResponse(data=DailyMetricsData(**metrics_for(_day(day).isoformat()).summary()))


@router.get("/sales", response_model=SalesResponse)
async def get_sales(days: int = Query(7, ge=1, le=90), until: str | None = None) -> SalesResponse:
    window = _window(days, until)
    return SalesResponse(
        data=SalesData(
            total_sales=sum(day["sales_count"] for day in window),
            total_revenue=round(sum(day["revenue"] for day in window), 2),
            series=[SalesPoint(**day) for day in window],
        )
    )


@router.get("/customers", response_model=CustomerMetricsResponse)
async def get_customer_metrics(days: int = Query(7, ge=1, le=90), until: str | None = None) -> CustomerMetricsResponse:
    window = _window(days, until)
    return CustomerMetricsResponse(
        data=CustomerMetricsData(
            new_customers=sum(day["new_customers"] for day in window),
            tier_upgrades=sum(day["tier_upgrades"] for day in window),
            tier_downgrades=sum(day["tier_downgrades"] for day in window),
            series=[CustomerPoint(**day) for day in window],
        )
    )


@router.get("/inventory", response_model=InventoryResponse)
async def get_inventory(day: str | None = Query(None, alias="date")) -> InventoryResponse:
    return InventoryResponse(data=InventoryData(**metrics_for(_day(day).isoformat()).summary()))


@router.get("/financial", response_model=FinancialResponse)
async def get_financial(days: int = Query(7, ge=1, le=90), until: str | None = None) -> FinancialResponse:
    window = _window(days, until)
    return FinancialResponse(
        data=FinancialData(
            total_revenue=round(sum(day["revenue"] for day in window), 2),
            total_cash_flow=round(sum(day["cash_flow"] for day in window), 2),
            series=[FinancialPoint(**day) for day in window],
        )
    )


@router.get("/events/recent", response_model=RecentEventsResponse)
async def get_recent_events(
    limit: int = Query(20, ge=1, le=200),
    event_type: str | None = None,
) -> RecentEventsResponse:
    data = [RealtimeEventData(**event.summary()) for event in recent_events(limit=limit, event_type=event_type)]
    return RecentEventsResponse(count=len(data), data=data)
