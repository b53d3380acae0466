"""Service for subscription lifecycle transitions with Stripe."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Optional

from ..domain.exceptions import NotResumableError
from ..domain.models import Subscription, SubscriptionUpdate
from ..domain.models.billing import TrialEnd
from ..domain.models.subscription import utcnow
from ..domain.ports.persistence import AccountGateway, BillingProvider, SubscriptionRepository
from .cycle_resolver import CycleResolver

logger = logging.getLogger(__name__)


class SubscriptionLifecycle:
    """
    Drives quantity changes, plan swaps, cancellation and resumption.

    Every mutation writes to the billing provider first and only touches the
    local record once the provider accepted it, so a ``RemoteUpdateError``
    always leaves the subscription as it was.
    """

    def __init__(
        self,
        repository: SubscriptionRepository,
        provider: BillingProvider,
        accounts: AccountGateway,
        cycles: Optional[CycleResolver] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._provider = provider
        self._accounts = accounts
        self._cycles = cycles
        self._clock = clock

    # Quantity -----------------------------------------------------------------
    def set_quantity(self, subscription: Subscription, quantity: int) -> Subscription:
        """
        Update the seat count on Stripe, then locally.

        Raises:
            ValueError: If quantity is lower than 1
            RemoteUpdateError: If Stripe rejects the update
        """
        if quantity < 1:
            raise ValueError("Quantity must be at least 1")

        self._provider.update(subscription.provider_id, SubscriptionUpdate(quantity=quantity))

        self._commit(subscription, quantity=quantity)
        logger.info("Subscription %s quantity set to %s", subscription.id, quantity)
        return subscription

    def increment_quantity(self, subscription: Subscription, count: int = 1) -> Subscription:
        return self.set_quantity(subscription, subscription.quantity + count)

    def increment_and_invoice(self, subscription: Subscription, count: int = 1) -> Subscription:
        """Add seats and bill them now instead of prorating on the next invoice."""
        self.increment_quantity(subscription, count)
        self._accounts.invoice_now(subscription.subscriber_id)
        return subscription

    def decrement_quantity(self, subscription: Subscription, count: int = 1) -> Subscription:
        return self.set_quantity(subscription, max(1, subscription.quantity - count))

    # Plans --------------------------------------------------------------------
    def swap(self, subscription: Subscription, plan_id: str, grandfather: bool = False) -> Subscription:
        """
        Move the subscription to another plan.

        The current trial is carried over to the exact instant; outside a
        trial it is ended immediately so a swap never grants a fresh one.
        Quantity is kept. Pending proration is invoiced right away and any
        scheduled cancellation is lifted.

        Args:
            subscription: Subscription to change
            plan_id: Target Stripe plan
            grandfather: Keep the entitlement of the plan being left until
                ``release_grandfathered_plan`` is called

        Raises:
            RemoteUpdateError: If Stripe rejects the update
        """
        now = self._clock()
        changes = SubscriptionUpdate(
            plan=plan_id,
            prorate=subscription.prorate,
            coupon=subscription.coupon,
            billing_cycle_anchor=subscription.billing_cycle_anchor,
            trial_end=self._trial_directive(subscription, now),
            cancel_at_period_end=False,
        )
        if subscription.quantity:
            changes.quantity = subscription.quantity

        self._provider.update(subscription.provider_id, changes)
        self._accounts.invoice_now(subscription.subscriber_id)

        previous_plan_id = subscription.plan_id
        grandfathered = subscription.previous_plan_id
        if grandfather and grandfathered is None and previous_plan_id != plan_id:
            grandfathered = previous_plan_id
        self._commit(subscription, plan_id=plan_id, previous_plan_id=grandfathered, ends_at=None)
        self._forget_cycles(subscription)
        logger.info(
            "Subscription %s swapped from %s to %s", subscription.id, previous_plan_id, plan_id
        )
        return subscription

    def release_grandfathered_plan(self, subscription: Subscription) -> Subscription:
        if subscription.previous_plan_id is None:
            return subscription
        released = subscription.previous_plan_id
        self._commit(subscription, previous_plan_id=None)
        logger.info("Subscription %s released grandfathered plan %s", subscription.id, released)
        return subscription

    # Cancellation -------------------------------------------------------------
    def cancel(self, subscription: Subscription) -> Subscription:
        """Cancel at the end of the billing period, or when the trial ends."""
        now = self._clock()
        remote = self._provider.get(subscription.provider_id)
        self._provider.cancel(subscription.provider_id, at_period_end=True)

        if subscription.on_trial(now):
            ends_at = subscription.trial_ends_at
        else:
            ends_at = remote.current_period_end

        self._commit(subscription, ends_at=ends_at)
        self._forget_cycles(subscription)
        logger.info("Subscription %s cancelled, grace period until %s", subscription.id, subscription.ends_at)
        return subscription

    def cancel_now(self, subscription: Subscription) -> Subscription:
        self._provider.cancel(subscription.provider_id, at_period_end=False)
        self.mark_as_cancelled(subscription)
        self._forget_cycles(subscription)
        return subscription

    def mark_as_cancelled(self, subscription: Subscription) -> Subscription:
        """Record an immediate cancellation locally without calling Stripe."""
        self._commit(subscription, ends_at=self._clock())
        logger.info("Subscription %s marked as cancelled", subscription.id)
        return subscription

    def resume(self, subscription: Subscription) -> Subscription:
        """
        Lift a scheduled cancellation.

        Raises:
            NotResumableError: If the subscription is not within its grace period
            RemoteUpdateError: If Stripe rejects the update
        """
        now = self._clock()
        if not subscription.on_grace_period(now):
            raise NotResumableError("Unable to resume subscription that is not within grace period.")

        changes = SubscriptionUpdate(
            plan=subscription.plan_id,
            prorate=subscription.prorate,
            trial_end=self._trial_directive(subscription, now),
            cancel_at_period_end=False,
        )
        self._provider.update(subscription.provider_id, changes)

        self._commit(subscription, ends_at=None)
        self._forget_cycles(subscription)
        logger.info("Subscription %s resumed", subscription.id)
        return subscription

    # Helpers ------------------------------------------------------------------
    @staticmethod
    def _trial_directive(subscription: Subscription, now: datetime) -> TrialEnd:
        if subscription.on_trial(now) and subscription.trial_ends_at is not None:
            return subscription.trial_ends_at
        return "now"

    def _commit(self, subscription: Subscription, **changes: Any) -> None:
        """Save ``changes`` and apply them to ``subscription`` only once the save succeeded."""
        changes["updated_at"] = self._clock()
        self._repository.save_subscription(replace(subscription, **changes))
        for name, value in changes.items():
            setattr(subscription, name, value)

    def _forget_cycles(self, subscription: Subscription) -> None:
        if self._cycles is not None:
            self._cycles.forget(subscription)
