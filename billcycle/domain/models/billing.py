"""Value objects exchanged with the billing provider and derived from it."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional, Union

from .subscription import BillingCycleAnchor

TrialEnd = Union[datetime, Literal["now"]]


@dataclass(slots=True)
class RemoteSubscription:
    """Provider-side view of a subscription."""

    id: str
    plan_id: str
    interval: str
    current_period_start: datetime
    current_period_end: datetime
    quantity: int = 1
    item_id: Optional[str] = None


@dataclass(slots=True)
class SubscriptionUpdate:
    """Mutation sent to the provider. ``None`` fields are left untouched."""

    plan: Optional[str] = None
    quantity: Optional[int] = None
    prorate: Optional[bool] = None
    coupon: Optional[str] = None
    billing_cycle_anchor: Optional[BillingCycleAnchor] = None
    trial_end: Optional[TrialEnd] = None
    cancel_at_period_end: Optional[bool] = None


@dataclass(slots=True)
class CycleBoundaries:
    paid_at: Optional[datetime]
    next_billing_cycle: Optional[datetime]
    next_refresh_cycle: Optional[datetime]


@dataclass(slots=True)
class EntitlementSummary:
    emails_available: int
    emails_spent_this_cycle: int
    total_emails_spent: int
    emails_remaining: int
    current_emails_remaining: int
