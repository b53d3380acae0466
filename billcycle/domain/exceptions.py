"""Errors raised by the subscription lifecycle and its collaborators."""

from typing import Optional


class BillingError(Exception):
    """Base class for every billing domain error."""


class RemoteUpdateError(BillingError):
    """The billing provider rejected or failed a mutation.

    The local record is never written when this is raised.
    """

    def __init__(self, message: str, *, provider_code: Optional[str] = None) -> None:
        super().__init__(message)
        self.provider_code = provider_code


class NotResumableError(BillingError):
    """Raised when resuming a subscription that is not within its grace period."""


class LedgerQueryError(BillingError):
    """A usage ledger sum could not be computed."""


class PlanNotFoundError(BillingError):
    """The plan catalog has no entry for the requested plan identifier."""

    def __init__(self, plan_id: str) -> None:
        super().__init__(f"Plan {plan_id!r} not found")
        self.plan_id = plan_id


class SubscriptionNotFoundError(BillingError):
    """No local subscription or account matches the requested identifier."""
