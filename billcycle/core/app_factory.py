from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging
from ..domain.ports.persistence import BillingProvider, PersistenceGateway
from ..infrastructure.persistence.sqlite import SQLitePersistence
from ..presentation.api.routers import accounts as accounts_router
from ..presentation.api.routers import subscriptions as subscriptions_router
from ..services.account_service import AccountService
from ..services.cycle_resolver import CycleResolver
from ..services.entitlement_calculator import EntitlementCalculator
from ..services.stripe_service import StripeBillingProvider
from ..services.subscription_lifecycle import SubscriptionLifecycle

logger = logging.getLogger(__name__)


def create_application(container: Optional[ApplicationContainer] = None) -> FastAPI:
    """Build the API. A prebuilt ``container`` skips wiring SQLite and Stripe."""
    settings = container.settings if container else Settings()

    app = FastAPI(title="Billing Cycle Service", lifespan=_create_lifespan(settings, container))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(accounts_router.router)
    app.include_router(subscriptions_router.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"ok": True}

    if container is not None:
        app.state.container = container  # type: ignore[attr-defined]

    return app


def build_container(
    settings: Settings,
    persistence: PersistenceGateway,
    provider: BillingProvider,
) -> ApplicationContainer:
    account_service = AccountService(persistence, persistence, provider)
    cycle_resolver = CycleResolver(provider, account_service, persistence)
    lifecycle = SubscriptionLifecycle(
        persistence,
        provider,
        account_service,
        cycles=cycle_resolver if settings.invalidate_cycles_on_change else None,
    )
    entitlements = EntitlementCalculator(persistence, persistence, account_service, cycle_resolver)
    return ApplicationContainer(
        settings=settings,
        persistence=persistence,
        account_service=account_service,
        cycle_resolver=cycle_resolver,
        lifecycle=lifecycle,
        entitlements=entitlements,
    )


def _create_lifespan(settings: Settings, prebuilt: Optional[ApplicationContainer]):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        if prebuilt is not None:
            yield
            return

        persistence = SQLitePersistence(settings.database_path)
        provider = StripeBillingProvider(settings.stripe_secret_key)
        if not settings.stripe_secret_key:
            logger.warning("STRIPE_SECRET_KEY is not set; provider calls will fail")
        app.state.container = build_container(settings, persistence, provider)  # type: ignore[attr-defined]
        logger.info("Billing service started with database %s", settings.database_path)

        try:
            yield
        finally:
            persistence.close()

    return lifespan
