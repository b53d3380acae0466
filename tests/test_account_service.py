from datetime import datetime, timezone

import pytest

from billcycle.domain.exceptions import SubscriptionNotFoundError
from billcycle.infrastructure.persistence.sqlite import SQLitePersistence
from billcycle.services.account_service import AccountService

from .conftest import FrozenClock


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def persistence(tmp_path):
    store = SQLitePersistence(tmp_path / "billing.db")
    yield store
    store.close()


@pytest.fixture
def service(persistence, provider, clock):
    return AccountService(persistence, persistence, provider, clock=clock)


class TestUnits:
    def test_additional_units(self, service, persistence):
        account = persistence.create_account("a@example.com", additional_units_bought=12)

        assert service.additional_units_bought(account.id) == 12

    def test_buy_additional_units_accumulates(self, service, persistence):
        account = persistence.create_account("a@example.com", additional_units_bought=12)

        service.buy_additional_units(account.id, 8)

        assert service.additional_units_bought(account.id) == 20

    def test_buy_rejects_non_positive(self, service, persistence):
        account = persistence.create_account("a@example.com")

        with pytest.raises(ValueError):
            service.buy_additional_units(account.id, 0)

    def test_unknown_account(self, service):
        with pytest.raises(SubscriptionNotFoundError):
            service.additional_units_bought(123)


class TestInvoice:
    def test_invoices_stripe_customer(self, service, persistence, provider):
        account = persistence.create_account("a@example.com", stripe_customer_id="cus_9")

        assert service.invoice_now(account.id) is True
        assert provider.invoiced == ["cus_9"]

    def test_skips_account_without_customer(self, service, persistence, provider):
        account = persistence.create_account("a@example.com")

        assert service.invoice_now(account.id) is False
        assert provider.invoiced == []


class TestActiveBillingCycleStart:
    @pytest.mark.parametrize(
        "now, expected",
        [
            (utc(2026, 1, 10, 12), utc(2026, 1, 10, 12)),
            (utc(2026, 2, 9), utc(2026, 1, 10, 12)),
            (utc(2026, 2, 10, 12), utc(2026, 2, 10, 12)),
            (utc(2026, 11, 30), utc(2026, 11, 10, 12)),
        ],
    )
    def test_latest_monthly_anniversary(self, persistence, provider, remote, now, expected):
        remote.interval = "year"
        remote.current_period_start = utc(2026, 1, 10, 12)
        account = persistence.create_account("a@example.com")
        persistence.create_subscription(account.id, remote.id, "annual")
        service = AccountService(persistence, persistence, provider, clock=FrozenClock(now))

        assert service.resolve_active_billing_cycle_start(account.id) == expected

    def test_month_end_anchor_does_not_drift(self, persistence, provider, remote):
        remote.current_period_start = utc(2026, 1, 31)
        account = persistence.create_account("a@example.com")
        persistence.create_subscription(account.id, remote.id, "annual")
        service = AccountService(persistence, persistence, provider, clock=FrozenClock(utc(2026, 3, 31, 1)))

        assert service.resolve_active_billing_cycle_start(account.id) == utc(2026, 3, 31)

    def test_requires_subscription(self, service, persistence):
        account = persistence.create_account("a@example.com")

        with pytest.raises(SubscriptionNotFoundError):
            service.resolve_active_billing_cycle_start(account.id)
