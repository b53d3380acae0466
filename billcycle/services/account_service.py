"""Account-level billing capabilities used by the subscription core."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from ..domain.exceptions import SubscriptionNotFoundError
from ..domain.models import Account
from ..domain.models.subscription import utcnow
from ..domain.ports.persistence import AccountRepository, BillingProvider, SubscriptionRepository
from .cycle_resolver import add_months

logger = logging.getLogger(__name__)


class AccountService:
    """Implements the account gateway on top of local records and Stripe."""

    def __init__(
        self,
        accounts: AccountRepository,
        subscriptions: SubscriptionRepository,
        provider: BillingProvider,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._accounts = accounts
        self._subscriptions = subscriptions
        self._provider = provider
        self._clock = clock

    def get_account(self, account_id: int) -> Account:
        account = self._accounts.get_account(account_id)
        if account is None:
            raise SubscriptionNotFoundError(f"Account {account_id} not found")
        return account

    def additional_units_bought(self, account_id: int) -> int:
        return self.get_account(account_id).additional_units_bought

    def buy_additional_units(self, account_id: int, units: int) -> Account:
        if units < 1:
            raise ValueError("Units must be a positive integer")
        account = self.get_account(account_id)
        updated = self._accounts.set_additional_units_bought(
            account_id, account.additional_units_bought + units
        )
        logger.info("Account %s bought %s additional units", account_id, units)
        return updated

    def invoice_now(self, account_id: int) -> bool:
        """
        Invoice the account's pending Stripe items immediately.

        Returns:
            False when the account has no Stripe customer or nothing to invoice.

        Raises:
            RemoteUpdateError: If Stripe fails to create or pay the invoice
        """
        account = self.get_account(account_id)
        if not account.stripe_customer_id:
            logger.info("Account %s has no Stripe customer, skipping invoice", account_id)
            return False
        return self._provider.invoice_customer(account.stripe_customer_id)

    def resolve_active_billing_cycle_start(self, account_id: int) -> datetime:
        """Latest monthly anniversary of the current provider period that has already begun."""
        subscription = self._subscriptions.get_current_subscription(account_id)
        if subscription is None:
            raise SubscriptionNotFoundError(f"Account {account_id} has no subscription")
        period_start = self._provider.get(subscription.provider_id).current_period_start
        now = self._clock()
        months = 0
        while add_months(period_start, months + 1) <= now:
            months += 1
        return add_months(period_start, months)
