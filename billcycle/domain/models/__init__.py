"""Domain models for the billing cycle service."""

from .account import Account
from .billing import (
    CycleBoundaries,
    EntitlementSummary,
    RemoteSubscription,
    SubscriptionUpdate,
)
from .plan import Plan
from .subscription import Subscription, SubscriptionState

__all__ = [
    "Account",
    "CycleBoundaries",
    "EntitlementSummary",
    "Plan",
    "RemoteSubscription",
    "Subscription",
    "SubscriptionState",
    "SubscriptionUpdate",
]
