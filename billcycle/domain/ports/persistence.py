from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Protocol

from ..models import Account, Plan, RemoteSubscription, Subscription, SubscriptionUpdate


class SubscriptionRepository(Protocol):
    """Persistence functions related to local subscription records."""

    def create_subscription(
        self,
        subscriber_id: int,
        provider_id: str,
        plan_id: str,
        quantity: int = 1,
        trial_ends_at: Optional[datetime] = None,
    ) -> Subscription:
        ...

    def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        ...

    def get_current_subscription(self, subscriber_id: int) -> Optional[Subscription]:
        ...

    def save_subscription(self, subscription: Subscription) -> Subscription:
        ...


class AccountRepository(Protocol):
    """Persistence functions related to subscriber accounts."""

    def create_account(
        self,
        email: str,
        stripe_customer_id: Optional[str] = None,
        additional_units_bought: int = 0,
    ) -> Account:
        ...

    def get_account(self, account_id: int) -> Optional[Account]:
        ...

    def set_additional_units_bought(self, account_id: int, units: int) -> Account:
        ...


class PlanCatalog(Protocol):
    """Resolves a plan identifier to its per-cycle quota."""

    def lookup(self, plan_id: str) -> Plan:
        """Raise ``PlanNotFoundError`` for unknown plans."""
        ...


class UsageLedger(Protocol):
    """Sums consumed units for an account."""

    def sum_units(self, account_id: int, start: datetime, end: Optional[datetime]) -> int:
        """Units recorded in ``[start, end)``; ``end=None`` is unbounded.

        Raises ``LedgerQueryError`` when the sum cannot be computed.
        """
        ...


class CycleCache(Protocol):
    """Key-value store for derived cycle boundaries that outlives the process."""

    def get(self, key: str) -> Optional[datetime]:
        ...

    def put(self, key: str, value: datetime, ttl: Optional[timedelta] = None) -> None:
        """Store ``value``; ``ttl=None`` keeps it forever."""
        ...

    def forget(self, key: str) -> None:
        ...


class BillingProvider(Protocol):
    """Remote billing provider holding the authoritative subscription periods."""

    def get(self, provider_id: str) -> RemoteSubscription:
        ...

    def update(self, provider_id: str, changes: SubscriptionUpdate) -> RemoteSubscription:
        ...

    def cancel(self, provider_id: str, *, at_period_end: bool) -> RemoteSubscription:
        ...

    def invoice_customer(self, customer_id: str) -> bool:
        """Invoice pending items now. Returns False when there is nothing to invoice."""
        ...


class AccountGateway(Protocol):
    """Account-level capabilities the subscription core depends on."""

    def additional_units_bought(self, account_id: int) -> int:
        ...

    def invoice_now(self, account_id: int) -> bool:
        ...

    def resolve_active_billing_cycle_start(self, account_id: int) -> datetime:
        ...


class PersistenceGateway(
    SubscriptionRepository,
    AccountRepository,
    PlanCatalog,
    UsageLedger,
    CycleCache,
    Protocol,
):
    """Composite gateway combining every persistence concern used by the app."""

    pass
