"""Usage entitlements derived from the subscription lifecycle and cycles."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from ..domain.exceptions import LedgerQueryError
from ..domain.models import EntitlementSummary, Subscription
from ..domain.models.subscription import utcnow
from ..domain.ports.persistence import AccountGateway, PlanCatalog, UsageLedger
from .cycle_resolver import CycleResolver

logger = logging.getLogger(__name__)


def _as_units(value: Any) -> int:
    """Ledger results that are not numeric count as zero spend."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric usage sum %r", value)
        return 0


class EntitlementCalculator:
    """Computes available, spent and remaining email units for a subscription."""

    def __init__(
        self,
        plans: PlanCatalog,
        ledger: UsageLedger,
        accounts: AccountGateway,
        cycles: CycleResolver,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._plans = plans
        self._ledger = ledger
        self._accounts = accounts
        self._cycles = cycles
        self._clock = clock

    def emails_available(self, subscription: Subscription) -> int:
        """Quota of the active (possibly grandfathered) plan plus bought units."""
        plan = self._plans.lookup(subscription.active_plan_id)
        return plan.units_per_cycle + self._accounts.additional_units_bought(subscription.subscriber_id)

    def emails_spent_this_cycle(self, subscription: Subscription) -> int:
        """Units used since the current billing cycle started; 0 if the ledger fails."""
        start = self._cycles.paid_at(subscription)
        try:
            total = self._ledger.sum_units(subscription.subscriber_id, start, self._clock())
        except LedgerQueryError as exc:
            logger.warning("Usage ledger unavailable for subscription %s: %s", subscription.id, exc)
            return 0
        return _as_units(total)

    def total_emails_spent(self, subscription: Subscription) -> int:
        """Units used over the lifetime of this subscription record."""
        total = self._ledger.sum_units(
            subscription.subscriber_id, subscription.created_at, subscription.ends_at
        )
        return _as_units(total)

    def emails_remaining(self, subscription: Subscription) -> int:
        # TODO: compares lifetime spend against a single cycle's quota; reconcile
        # with current_emails_remaining once the intended accounting period is settled.
        return max(0, self.emails_available(subscription) - self.total_emails_spent(subscription))

    def current_emails_remaining(self, subscription: Subscription) -> int:
        available = self.emails_available(subscription)
        bought = self._accounts.additional_units_bought(subscription.subscriber_id)
        return max(0, available - bought - self.emails_spent_this_cycle(subscription))

    def summary(self, subscription: Subscription) -> EntitlementSummary:
        available = self.emails_available(subscription)
        bought = self._accounts.additional_units_bought(subscription.subscriber_id)
        spent_this_cycle = self.emails_spent_this_cycle(subscription)
        total_spent = self.total_emails_spent(subscription)
        return EntitlementSummary(
            emails_available=available,
            emails_spent_this_cycle=spent_this_cycle,
            total_emails_spent=total_spent,
            emails_remaining=max(0, available - total_spent),
            current_emails_remaining=max(0, available - bought - spent_this_cycle),
        )
