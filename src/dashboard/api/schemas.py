"""Pydantic response schemas for the Dashboard API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class DailyMetricsData(BaseModel):
    date: str
    sales_count: int = 0
    revenue: float = 0.0
    new_customers: int = 0
    tier_upgrades: int = 0
    tier_downgrades: int = 0
    low_stock_count: int = 0
    total_items: int = 0
    cash_flow: float = 0.0
    events_processed: int = 0
    updated_at: str | None = None


class SummaryResponse(BaseModel):
    success: bool = True
    data: DailyMetricsData


class SalesPoint(BaseModel):
    date: str
    sales_count: int
    revenue: float


class SalesData(BaseModel):
    total_sales: int
    total_revenue: float
    series: list[SalesPoint]


class SalesResponse(BaseModel):
    success: bool = True
    data: SalesData


class CustomerPoint(BaseModel):
    date: str
    new_customers: int
    tier_upgrades: int
    tier_downgrades: int


class CustomerMetricsData(BaseModel):
    new_customers: int
    tier_upgrades: int
    tier_downgrades: int
    series: list[CustomerPoint]


class CustomerMetricsResponse(BaseModel):
    success: bool = True
    data: CustomerMetricsData


class InventoryData(BaseModel):
    date: str
    low_stock_count: int
    total_items: int


class InventoryResponse(BaseModel):
    success: bool = True
    data: InventoryData


class FinancialPoint(BaseModel):
    date: str
    revenue: float
    cash_flow: float


class FinancialData(BaseModel):
    total_revenue: float
    total_cash_flow: float
    series: list[FinancialPoint]


class FinancialResponse(BaseModel):
    success: bool = True
    data: FinancialData


class RealtimeEventData(BaseModel):
    event_key: str
    event_type: str
    event_source: str
    event_data: dict[str, Any] = Field(default_factory=dict)
    processed_at: str | None = None


class RecentEventsResponse(BaseModel):
    success: bool = True
    count: int
    data: list[RealtimeEventData]
