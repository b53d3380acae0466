"""Stripe implementation of the billing provider port."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe

from ..domain.exceptions import RemoteUpdateError
from ..domain.models import RemoteSubscription, SubscriptionUpdate

logger = logging.getLogger(__name__)

# Error codes Stripe uses when a customer has no pending items to invoice.
NOTHING_TO_INVOICE_CODES = frozenset({"invoice_no_customer_line_items", "invoice_no_subscription_line_items"})


class StripeBillingProvider:
    """Reads and mutates Stripe subscriptions on behalf of the lifecycle service."""

    def __init__(self, secret_key: Optional[str] = None) -> None:
        if secret_key:
            stripe.api_key = secret_key

    def get(self, provider_id: str) -> RemoteSubscription:
        try:
            subscription = stripe.Subscription.retrieve(provider_id)
        except stripe.StripeError as exc:
            logger.error("Failed to retrieve Stripe subscription %s: %s", provider_id, exc)
            raise RemoteUpdateError(
                f"Failed to retrieve subscription {provider_id}: {exc}",
                provider_code=getattr(exc, "code", None),
            ) from exc
        return self._to_remote(subscription)

    def update(self, provider_id: str, changes: SubscriptionUpdate) -> RemoteSubscription:
        current = self.get(provider_id)
        params = self._update_params(current, changes)
        try:
            subscription = stripe.Subscription.modify(provider_id, **params)
        except stripe.StripeError as exc:
            logger.warning("Stripe rejected update of %s: %s", provider_id, exc)
            raise RemoteUpdateError(
                f"Failed to update subscription {provider_id}: {exc}",
                provider_code=getattr(exc, "code", None),
            ) from exc
        return self._to_remote(subscription)

    def cancel(self, provider_id: str, *, at_period_end: bool) -> RemoteSubscription:
        try:
            if at_period_end:
                subscription = stripe.Subscription.modify(provider_id, cancel_at_period_end=True)
            else:
                subscription = stripe.Subscription.cancel(provider_id)
        except stripe.StripeError as exc:
            logger.warning("Stripe rejected cancellation of %s: %s", provider_id, exc)
            raise RemoteUpdateError(
                f"Failed to cancel subscription {provider_id}: {exc}",
                provider_code=getattr(exc, "code", None),
            ) from exc
        return self._to_remote(subscription)

    def invoice_customer(self, customer_id: str) -> bool:
        try:
            invoice = stripe.Invoice.create(
                customer=customer_id,
                pending_invoice_items_behavior="include",
            )
            stripe.Invoice.pay(invoice["id"])
        except stripe.StripeError as exc:
            if getattr(exc, "code", None) in NOTHING_TO_INVOICE_CODES:
                logger.info("Nothing to invoice for customer %s: %s", customer_id, exc)
                return False
            logger.error("Failed to invoice customer %s: %s", customer_id, exc)
            raise RemoteUpdateError(
                f"Failed to invoice customer {customer_id}: {exc}",
                provider_code=getattr(exc, "code", None),
            ) from exc
        return True

    @staticmethod
    def _update_params(current: RemoteSubscription, changes: SubscriptionUpdate) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        item: Dict[str, Any] = {"id": current.item_id}
        if changes.plan is not None:
            item["price"] = changes.plan
        if changes.quantity is not None:
            item["quantity"] = changes.quantity
        if len(item) > 1:
            params["items"] = [item]
        if changes.prorate is not None:
            params["proration_behavior"] = "create_prorations" if changes.prorate else "none"
        if changes.coupon is not None:
            params["discounts"] = [{"coupon": changes.coupon}]
        if changes.billing_cycle_anchor is not None:
            params["billing_cycle_anchor"] = _timestamp_or_now(changes.billing_cycle_anchor)
        if changes.trial_end is not None:
            params["trial_end"] = _timestamp_or_now(changes.trial_end)
        if changes.cancel_at_period_end is not None:
            params["cancel_at_period_end"] = changes.cancel_at_period_end
        return params

    @staticmethod
    def _to_remote(subscription: Any) -> RemoteSubscription:
        item = subscription["items"]["data"][0]
        price = item.get("price") or item.get("plan") or {}
        recurring = price.get("recurring") or {}
        interval = recurring.get("interval") or price.get("interval") or "month"
        # Newer API versions expose the period on the item rather than the subscription.
        period_start = subscription.get("current_period_start") or item.get("current_period_start")
        period_end = subscription.get("current_period_end") or item.get("current_period_end")
        return RemoteSubscription(
            id=subscription["id"],
            plan_id=price.get("id", ""),
            interval=interval,
            current_period_start=datetime.fromtimestamp(int(period_start), tz=timezone.utc),
            current_period_end=datetime.fromtimestamp(int(period_end), tz=timezone.utc),
            quantity=item.get("quantity") or 1,
            item_id=item.get("id"),
        )


def _timestamp_or_now(value: Any) -> Any:
    if isinstance(value, datetime):
        return int(value.timestamp())
    return value
