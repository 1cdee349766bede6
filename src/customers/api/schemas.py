"""Pydantic request/response schemas for the Customers API.

Every response is wrapped in the ``{"success": ..., "data": ...}`` envelope
shared by the back-office services.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# --- Request Schemas ---


class RegisterCustomerRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Jane Doe",
                    "email": "jane.doe@example.com",
                    "phone": "+1-555-0123",
                }
            ]
        }
    }

    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=254)
    phone: str | None = Field(None, max_length=20)


class UpdateCustomerRequest(BaseModel):
    """Partial update. An explicit ``"phone": null`` removes the phone number."""

    model_config = {"json_schema_extra": {"examples": [{"name": "Jane Smith", "phone": "+1-555-0456"}]}}

    name: str | None = Field(None, min_length=1, max_length=100)
    email: str | None = Field(None, max_length=254)
    phone: str | None = Field(None, max_length=20)


class AdjustPointsRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"delta": -50, "reason": "Refund of order 1042"}]}}

    delta: int
    reason: str = Field(..., min_length=1, max_length=255)


# --- Response Schemas ---


class ErrorResponse(BaseModel):
    success: bool = False
    message: str


class CustomerData(BaseModel):
    id: str
    name: str
    email: str
    phone: str | None = None
    total_spent: float = 0.0
    points: int = 0
    tier: str
    discount_rate: float = 0.0
    is_active: bool = True
    registered_at: str | None = None
    updated_at: str | None = None


class CustomerResponse(BaseModel):
    success: bool = True
    message: str | None = None
    data: CustomerData


class CustomerListResponse(BaseModel):
    success: bool = True
    count: int
    total: int
    data: list[CustomerData]


class LoyaltyTierData(BaseModel):
    name: str
    min_points: int
    max_points: int | None = None
    discount_rate: float


class LoyaltyTiersResponse(BaseModel):
    success: bool = True
    data: list[LoyaltyTierData]


class AnalyticsData(BaseModel):
    total_customers: int
    active_customers: int
    inactive_customers: int
    loyalty_distribution: dict[str, int]


class AnalyticsResponse(BaseModel):
    success: bool = True
    data: AnalyticsData


class PointsOutcomeData(BaseModel):
    customer_id: str
    points_added: int
    old_points: int
    new_points: int
    old_tier: str
    new_tier: str
    tier_changed: bool
    direction: str | None = None


class PointsOutcomeResponse(BaseModel):
    success: bool = True
    message: str | None = None
    data: PointsOutcomeData


class ActivityData(BaseModel):
    id: str
    event_type: str
    idempotency_key: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None


class ActivityListResponse(BaseModel):
    success: bool = True
    count: int
    data: list[ActivityData]


class ReconciliationData(BaseModel):
    checked: int
    repaired: int
    republished: int
    deferred: int


class ReconciliationResponse(BaseModel):
    success: bool = True
    data: ReconciliationData

