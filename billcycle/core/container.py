from dataclasses import dataclass

from .config import Settings
from ..domain.ports.persistence import PersistenceGateway
from ..services.account_service import AccountService
from ..services.cycle_resolver import CycleResolver
from ..services.entitlement_calculator import EntitlementCalculator
from ..services.subscription_lifecycle import SubscriptionLifecycle


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    persistence: PersistenceGateway
    account_service: AccountService
    cycle_resolver: CycleResolver
    lifecycle: SubscriptionLifecycle
    entitlements: EntitlementCalculator
