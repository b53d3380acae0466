"""Pydantic schemas for subscription API endpoints."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class SwapPlanRequest(BaseModel):
    """Request schema for swapping a subscription to another plan."""

    plan_id: str = Field(..., min_length=1)
    prorate: bool = True
    coupon: Optional[str] = None
    anchor_billing_cycle_on: Optional[datetime] = None
    anchor_billing_cycle_now: bool = False
    grandfather: bool = False


class QuantityChangeRequest(BaseModel):
    """Request schema for changing the seat count."""

    mode: Literal["set", "increment", "decrement"] = "set"
    value: int = Field(1, ge=1)
    invoice_now: bool = False


class CycleResponse(BaseModel):
    paid_at: Optional[datetime]
    next_billing_cycle: Optional[datetime]
    next_refresh_cycle: Optional[datetime]


class EntitlementResponse(BaseModel):
    emails_available: int
    emails_spent_this_cycle: int
    total_emails_spent: int
    emails_remaining: int
    current_emails_remaining: int


class SubscriptionResponse(BaseModel):
    """Response schema for subscription data."""

    id: int
    subscriber_id: int
    provider_id: str
    plan_id: str
    previous_plan_id: Optional[str]
    quantity: int
    trial_ends_at: Optional[datetime]
    ends_at: Optional[datetime]
    state: str
    valid: bool
    active: bool
    cancelled: bool
    on_trial: bool
    on_grace_period: bool


class SubscriptionStatusResponse(SubscriptionResponse):
    """Subscription data with its cycle boundaries and entitlements."""

    cycles: CycleResponse
    entitlements: Optional[EntitlementResponse]
