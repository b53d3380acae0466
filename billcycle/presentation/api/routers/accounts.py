from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ....core.dependencies import get_account_service
from ....domain.exceptions import SubscriptionNotFoundError
from ....domain.models import Account
from ....services.account_service import AccountService
from ..schemas.account_schemas import AccountResponse, BuyUnitsRequest

router = APIRouter(prefix="/api/accounts", tags=["Accounts"])


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(
    account_id: int,
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    try:
        account = service.get_account(account_id)
    except SubscriptionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _serialize(account)


@router.post("/{account_id}/units", response_model=AccountResponse)
async def buy_additional_units(
    account_id: int,
    payload: BuyUnitsRequest,
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    """Add purchased units on top of the plan quota."""
    try:
        account = service.buy_additional_units(account_id, payload.units)
    except SubscriptionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _serialize(account)


def _serialize(account: Account) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        email=account.email,
        stripe_customer_id=account.stripe_customer_id,
        additional_units_bought=account.additional_units_bought,
        created_at=account.created_at,
    )
