"""API router for subscription lifecycle management."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ....core.dependencies import (
    get_cycle_resolver,
    get_entitlements,
    get_lifecycle,
    get_persistence_gateway,
)
from ....domain.exceptions import (
    NotResumableError,
    PlanNotFoundError,
    RemoteUpdateError,
    SubscriptionNotFoundError,
)
from ....domain.models import Subscription
from ....domain.ports.persistence import PersistenceGateway
from ....services.cycle_resolver import CycleResolver
from ....services.entitlement_calculator import EntitlementCalculator
from ....services.subscription_lifecycle import SubscriptionLifecycle
from ..schemas.subscription_schemas import (
    CycleResponse,
    EntitlementResponse,
    QuantityChangeRequest,
    SubscriptionResponse,
    SubscriptionStatusResponse,
    SwapPlanRequest,
)

router = APIRouter(prefix="/api/subscriptions", tags=["Subscriptions"])


@router.get("/{subscription_id}", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    subscription_id: int,
    persistence: PersistenceGateway = Depends(get_persistence_gateway),
    cycles: CycleResolver = Depends(get_cycle_resolver),
    entitlements: EntitlementCalculator = Depends(get_entitlements),
) -> SubscriptionStatusResponse:
    """Get lifecycle state, cycle boundaries and remaining units."""
    subscription = _load(persistence, subscription_id)
    try:
        boundaries = cycles.boundaries(subscription)
        summary = entitlements.summary(subscription) if subscription.valid() else None
    except RemoteUpdateError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except (PlanNotFoundError, SubscriptionNotFoundError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return SubscriptionStatusResponse(
        **_serialize(subscription).model_dump(),
        cycles=CycleResponse(
            paid_at=boundaries.paid_at,
            next_billing_cycle=boundaries.next_billing_cycle,
            next_refresh_cycle=boundaries.next_refresh_cycle,
        ),
        entitlements=EntitlementResponse(
            emails_available=summary.emails_available,
            emails_spent_this_cycle=summary.emails_spent_this_cycle,
            total_emails_spent=summary.total_emails_spent,
            emails_remaining=summary.emails_remaining,
            current_emails_remaining=summary.current_emails_remaining,
        )
        if summary
        else None,
    )


@router.post("/{subscription_id}/swap", response_model=SubscriptionResponse)
async def swap_plan(
    subscription_id: int,
    payload: SwapPlanRequest,
    persistence: PersistenceGateway = Depends(get_persistence_gateway),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
) -> SubscriptionResponse:
    subscription = _load(persistence, subscription_id)
    if not payload.prorate:
        subscription.no_prorate()
    if payload.coupon:
        subscription.with_coupon(payload.coupon)
    if payload.anchor_billing_cycle_now:
        subscription.anchor_billing_cycle_on("now")
    elif payload.anchor_billing_cycle_on is not None:
        subscription.anchor_billing_cycle_on(payload.anchor_billing_cycle_on)
    try:
        lifecycle.swap(subscription, payload.plan_id, grandfather=payload.grandfather)
    except RemoteUpdateError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return _serialize(subscription)


@router.post("/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    subscription_id: int,
    persistence: PersistenceGateway = Depends(get_persistence_gateway),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
) -> SubscriptionResponse:
    """Cancel at the end of the billing period."""
    subscription = _load(persistence, subscription_id)
    try:
        lifecycle.cancel(subscription)
    except RemoteUpdateError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return _serialize(subscription)


@router.post("/{subscription_id}/cancel-now", response_model=SubscriptionResponse)
async def cancel_subscription_now(
    subscription_id: int,
    persistence: PersistenceGateway = Depends(get_persistence_gateway),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
) -> SubscriptionResponse:
    subscription = _load(persistence, subscription_id)
    try:
        lifecycle.cancel_now(subscription)
    except RemoteUpdateError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return _serialize(subscription)


@router.post("/{subscription_id}/resume", response_model=SubscriptionResponse)
async def resume_subscription(
    subscription_id: int,
    persistence: PersistenceGateway = Depends(get_persistence_gateway),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
) -> SubscriptionResponse:
    subscription = _load(persistence, subscription_id)
    try:
        lifecycle.resume(subscription)
    except NotResumableError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RemoteUpdateError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return _serialize(subscription)


@router.post("/{subscription_id}/quantity", response_model=SubscriptionResponse)
async def change_quantity(
    subscription_id: int,
    payload: QuantityChangeRequest,
    persistence: PersistenceGateway = Depends(get_persistence_gateway),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
) -> SubscriptionResponse:
    subscription = _load(persistence, subscription_id)
    if payload.invoice_now and payload.mode != "increment":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Immediate invoicing is only available when incrementing",
        )
    try:
        if payload.mode == "increment" and payload.invoice_now:
            lifecycle.increment_and_invoice(subscription, payload.value)
        elif payload.mode == "increment":
            lifecycle.increment_quantity(subscription, payload.value)
        elif payload.mode == "decrement":
            lifecycle.decrement_quantity(subscription, payload.value)
        else:
            lifecycle.set_quantity(subscription, payload.value)
    except RemoteUpdateError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return _serialize(subscription)


@router.post("/{subscription_id}/release-plan", response_model=SubscriptionResponse)
async def release_grandfathered_plan(
    subscription_id: int,
    persistence: PersistenceGateway = Depends(get_persistence_gateway),
    lifecycle: SubscriptionLifecycle = Depends(get_lifecycle),
) -> SubscriptionResponse:
    """Stop honouring the entitlement of the plan held before the last swap."""
    subscription = _load(persistence, subscription_id)
    lifecycle.release_grandfathered_plan(subscription)
    return _serialize(subscription)


def _load(persistence: PersistenceGateway, subscription_id: int) -> Subscription:
    subscription = persistence.get_subscription(subscription_id)
    if subscription is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return subscription


def _serialize(subscription: Subscription) -> SubscriptionResponse:
    return SubscriptionResponse(
        id=subscription.id,
        subscriber_id=subscription.subscriber_id,
        provider_id=subscription.provider_id,
        plan_id=subscription.plan_id,
        previous_plan_id=subscription.previous_plan_id,
        quantity=subscription.quantity,
        trial_ends_at=subscription.trial_ends_at,
        ends_at=subscription.ends_at,
        state=subscription.state().value,
        valid=subscription.valid(),
        active=subscription.active(),
        cancelled=subscription.cancelled(),
        on_trial=subscription.on_trial(),
        on_grace_period=subscription.on_grace_period(),
    )
