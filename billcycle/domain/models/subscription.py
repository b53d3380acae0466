"""Subscription domain model mirrored against a Stripe subscription."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional, Union

BillingCycleAnchor = Union[datetime, Literal["now"]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionState(str, Enum):
    """Exclusive lifecycle states. Trialing is reported separately."""

    ACTIVE = "active"
    GRACE_PERIOD = "grace_period"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class Subscription:
    """
    Local record of a subscriber's Stripe subscription.

    Attributes:
        id: Unique identifier
        subscriber_id: Owning account
        provider_id: Stripe subscription ID
        plan_id: Stripe plan/price currently billed
        previous_plan_id: Grandfathered plan whose entitlement still applies
        quantity: Seat/unit count, always >= 1
        trial_ends_at: End of the trial, if any
        ends_at: Set once the subscription is cancelled; grace period runs until then
        created_at: Creation timestamp
        updated_at: Last update timestamp

    ``prorate``, ``billing_cycle_anchor`` and ``coupon`` modify the next
    provider update only and are never persisted.
    """

    id: int
    subscriber_id: int
    provider_id: str
    plan_id: str
    quantity: int = 1
    previous_plan_id: Optional[str] = None
    trial_ends_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    prorate: bool = field(default=True, compare=False, repr=False)
    billing_cycle_anchor: Optional[BillingCycleAnchor] = field(default=None, compare=False, repr=False)
    coupon: Optional[str] = field(default=None, compare=False, repr=False)

    # Predicates -------------------------------------------------------------
    def valid(self, now: Optional[datetime] = None) -> bool:
        """Active, on trial, or within the grace period."""
        now = now or utcnow()
        return self.active(now) or self.on_trial(now) or self.on_grace_period(now)

    def active(self, now: Optional[datetime] = None) -> bool:
        return self.ends_at is None or self.on_grace_period(now)

    def cancelled(self) -> bool:
        return self.ends_at is not None

    def on_trial(self, now: Optional[datetime] = None) -> bool:
        """Trial is compared against the start of the current day, not the instant."""
        if self.trial_ends_at is None:
            return False
        today = (now or utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
        return today < self.trial_ends_at

    def on_grace_period(self, now: Optional[datetime] = None) -> bool:
        if self.ends_at is None:
            return False
        return (now or utcnow()) < self.ends_at

    def state(self, now: Optional[datetime] = None) -> SubscriptionState:
        now = now or utcnow()
        if self.ends_at is None:
            return SubscriptionState.ACTIVE
        if self.on_grace_period(now):
            return SubscriptionState.GRACE_PERIOD
        return SubscriptionState.CANCELLED

    @property
    def active_plan_id(self) -> str:
        """Plan whose entitlement applies; the grandfathered one wins."""
        return self.previous_plan_id if self.previous_plan_id is not None else self.plan_id

    # Transient modifiers -----------------------------------------------------
    def no_prorate(self) -> "Subscription":
        self.prorate = False
        return self

    def anchor_billing_cycle_on(self, date: BillingCycleAnchor = "now") -> "Subscription":
        self.billing_cycle_anchor = date
        return self

    def with_coupon(self, coupon: str) -> "Subscription":
        self.coupon = coupon
        return self

    def __repr__(self) -> str:
        return (
            f"<Subscription id={self.id} subscriber_id={self.subscriber_id} "
            f"plan={self.plan_id} ends_at={self.ends_at}>"
        )
