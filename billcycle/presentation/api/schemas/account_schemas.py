"""Pydantic schemas for account API endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class BuyUnitsRequest(BaseModel):
    units: int = Field(..., ge=1)


class AccountResponse(BaseModel):
    id: int
    email: str
    stripe_customer_id: Optional[str]
    additional_units_bought: int
    created_at: datetime
