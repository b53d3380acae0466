"""Shared fixtures and in-memory collaborators for the billing tests."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from billcycle.domain.exceptions import LedgerQueryError, PlanNotFoundError, RemoteUpdateError
from billcycle.domain.models import Plan, RemoteSubscription, Subscription, SubscriptionUpdate
from billcycle.services.cycle_resolver import CycleResolver
from billcycle.services.entitlement_calculator import EntitlementCalculator
from billcycle.services.subscription_lifecycle import SubscriptionLifecycle

NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class FakeProvider:
    """Billing provider double recording every call."""

    def __init__(self, remote: RemoteSubscription) -> None:
        self.remote = remote
        self.get_calls = 0
        self.updates: List[Tuple[str, SubscriptionUpdate]] = []
        self.cancels: List[Tuple[str, bool]] = []
        self.invoiced: List[str] = []
        self.fail_with: Optional[RemoteUpdateError] = None

    def get(self, provider_id: str) -> RemoteSubscription:
        self.get_calls += 1
        return self.remote

    def update(self, provider_id: str, changes: SubscriptionUpdate) -> RemoteSubscription:
        if self.fail_with is not None:
            raise self.fail_with
        self.updates.append((provider_id, changes))
        if changes.plan is not None:
            self.remote.plan_id = changes.plan
        if changes.quantity is not None:
            self.remote.quantity = changes.quantity
        return self.remote

    def cancel(self, provider_id: str, *, at_period_end: bool) -> RemoteSubscription:
        if self.fail_with is not None:
            raise self.fail_with
        self.cancels.append((provider_id, at_period_end))
        return self.remote

    def invoice_customer(self, customer_id: str) -> bool:
        self.invoiced.append(customer_id)
        return True


class FakeAccounts:
    def __init__(self, additional_units: int = 0, cycle_start: Optional[datetime] = None) -> None:
        self.additional_units = additional_units
        self.cycle_start = cycle_start
        self.invoiced: List[int] = []
        self.cycle_start_calls = 0
        self.invoice_error: Optional[RemoteUpdateError] = None

    def additional_units_bought(self, account_id: int) -> int:
        return self.additional_units

    def invoice_now(self, account_id: int) -> bool:
        if self.invoice_error is not None:
            raise self.invoice_error
        self.invoiced.append(account_id)
        return True

    def resolve_active_billing_cycle_start(self, account_id: int) -> datetime:
        self.cycle_start_calls += 1
        assert self.cycle_start is not None
        return self.cycle_start


class FakeRepository:
    """Stores copies so tests can tell persisted state from in-memory edits."""

    def __init__(self) -> None:
        self.saved: Dict[int, Subscription] = {}
        self.save_calls = 0
        self.error: Optional[Exception] = None

    def save_subscription(self, subscription: Subscription) -> Subscription:
        self.save_calls += 1
        if self.error is not None:
            raise self.error
        self.saved[subscription.id] = replace(subscription)
        return subscription

    def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        stored = self.saved.get(subscription_id)
        return replace(stored) if stored else None


class FakeCache:
    def __init__(self, clock: FrozenClock) -> None:
        self._clock = clock
        self.values: Dict[str, Tuple[datetime, Optional[datetime]]] = {}
        self.puts: List[Tuple[str, datetime, Optional[timedelta]]] = []

    def get(self, key: str) -> Optional[datetime]:
        entry = self.values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self.values[key]
            return None
        return value

    def put(self, key: str, value: datetime, ttl: Optional[timedelta] = None) -> None:
        self.puts.append((key, value, ttl))
        expires_at = self._clock() + ttl if ttl is not None else None
        self.values[key] = (value, expires_at)

    def forget(self, key: str) -> None:
        self.values.pop(key, None)


class FakePlans:
    def __init__(self, *plans: Plan) -> None:
        self.plans = {plan.id: plan for plan in plans}

    def lookup(self, plan_id: str) -> Plan:
        try:
            return self.plans[plan_id]
        except KeyError:
            raise PlanNotFoundError(plan_id) from None


class FakeLedger:
    def __init__(self, total: object = 0) -> None:
        self.total = total
        self.error: Optional[LedgerQueryError] = None
        self.queries: List[Tuple[int, datetime, Optional[datetime]]] = []

    def sum_units(self, account_id: int, start: datetime, end: Optional[datetime]) -> object:
        self.queries.append((account_id, start, end))
        if self.error is not None:
            raise self.error
        return self.total


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def remote() -> RemoteSubscription:
    return RemoteSubscription(
        id="sub_123",
        plan_id="basic",
        interval="month",
        current_period_start=NOW - timedelta(days=10),
        current_period_end=NOW + timedelta(days=20),
        quantity=1,
        item_id="si_123",
    )


@pytest.fixture
def provider(remote: RemoteSubscription) -> FakeProvider:
    return FakeProvider(remote)


@pytest.fixture
def accounts() -> FakeAccounts:
    return FakeAccounts(additional_units=30)


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def cache(clock: FrozenClock) -> FakeCache:
    return FakeCache(clock)


@pytest.fixture
def plans() -> FakePlans:
    return FakePlans(
        Plan(id="basic", name="Basic", units_per_cycle=100),
        Plan(id="pro", name="Pro", units_per_cycle=500),
    )


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def subscription() -> Subscription:
    return Subscription(
        id=1,
        subscriber_id=7,
        provider_id="sub_123",
        plan_id="basic",
        quantity=2,
        created_at=NOW - timedelta(days=100),
        updated_at=NOW - timedelta(days=100),
    )


@pytest.fixture
def cycles(provider: FakeProvider, accounts: FakeAccounts, cache: FakeCache, clock: FrozenClock) -> CycleResolver:
    return CycleResolver(provider, accounts, cache, clock=clock)


@pytest.fixture
def lifecycle(
    repository: FakeRepository,
    provider: FakeProvider,
    accounts: FakeAccounts,
    cycles: CycleResolver,
    clock: FrozenClock,
) -> SubscriptionLifecycle:
    return SubscriptionLifecycle(repository, provider, accounts, cycles=cycles, clock=clock)


@pytest.fixture
def entitlements(
    plans: FakePlans,
    ledger: FakeLedger,
    accounts: FakeAccounts,
    cycles: CycleResolver,
    clock: FrozenClock,
) -> EntitlementCalculator:
    return EntitlementCalculator(plans, ledger, accounts, cycles, clock=clock)
