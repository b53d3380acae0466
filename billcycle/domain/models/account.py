"""Account domain model for subscribers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .subscription import utcnow


@dataclass(slots=True)
class Account:
    """
    Subscriber owning one or more subscriptions over time.

    Attributes:
        id: Unique identifier
        email: Contact address
        stripe_customer_id: Stripe customer the subscriptions are billed to
        additional_units_bought: Units purchased on top of the plan quota
        created_at: Account creation timestamp
    """

    id: int
    email: str
    stripe_customer_id: Optional[str] = None
    additional_units_bought: int = 0
    created_at: datetime = field(default_factory=utcnow)
