"""Billing and refresh cycle boundaries for a subscription."""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..domain.models import CycleBoundaries, Subscription
from ..domain.models.subscription import utcnow
from ..domain.ports.persistence import AccountGateway, BillingProvider, CycleCache

logger = logging.getLogger(__name__)

PAID_AT_TTL = timedelta(days=31)


def add_months(value: datetime, months: int) -> datetime:
    """Step ``months`` calendar months, clamping to the last day of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


class CycleResolver:
    """
    Resolves when the current billing cycle started and when the next billing
    and refresh cycles begin.

    Boundaries are cached per subscription in an external cache so repeated
    reads do not hit the billing provider. The paid-at value expires after
    about a month; the next billing cycle is kept until explicitly forgotten.
    """

    def __init__(
        self,
        provider: BillingProvider,
        accounts: AccountGateway,
        cache: CycleCache,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._provider = provider
        self._accounts = accounts
        self._cache = cache
        self._clock = clock

    @staticmethod
    def paid_at_key(subscription: Subscription) -> str:
        return f"sub-payment-{subscription.id}"

    @staticmethod
    def next_billing_key(subscription: Subscription) -> str:
        return f"sub-next-billing-{subscription.id}"

    def paid_at(self, subscription: Subscription) -> datetime:
        key = self.paid_at_key(subscription)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        remote = self._provider.get(subscription.provider_id)
        if remote.interval == "year":
            period_start = self._accounts.resolve_active_billing_cycle_start(subscription.subscriber_id)
        else:
            period_start = remote.current_period_start

        self._cache.put(key, period_start, PAID_AT_TTL)
        logger.debug("Cached paid_at %s for subscription %s", period_start, subscription.id)
        return period_start

    def next_billing_cycle(self, subscription: Subscription) -> Optional[datetime]:
        if not subscription.valid(self._clock()):
            return None

        key = self.next_billing_key(subscription)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        period_end = self._provider.get(subscription.provider_id).current_period_end
        # One second past the period end lands inside the next period.
        next_cycle = period_end + timedelta(seconds=1)
        self._cache.put(key, next_cycle, None)
        return next_cycle

    def next_refresh_cycle(self, subscription: Subscription) -> Optional[datetime]:
        """Usage refreshes at most monthly, even on longer billing intervals."""
        if not subscription.valid(self._clock()):
            return None

        next_refresh = add_months(self.paid_at(subscription), 1)
        next_billing = self.next_billing_cycle(subscription)
        if next_billing is None or next_refresh < next_billing:
            return next_refresh
        return next_billing

    def boundaries(self, subscription: Subscription) -> CycleBoundaries:
        if not subscription.valid(self._clock()):
            return CycleBoundaries(paid_at=None, next_billing_cycle=None, next_refresh_cycle=None)
        return CycleBoundaries(
            paid_at=self.paid_at(subscription),
            next_billing_cycle=self.next_billing_cycle(subscription),
            next_refresh_cycle=self.next_refresh_cycle(subscription),
        )

    def forget(self, subscription: Subscription) -> None:
        self._cache.forget(self.paid_at_key(subscription))
        self._cache.forget(self.next_billing_key(subscription))
        logger.debug("Forgot cached cycle boundaries for subscription %s", subscription.id)
