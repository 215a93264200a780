"""Checkout input and result models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CartLine(BaseModel):
    """One selected service in the cart."""
    service_id: str
    unit_price: float = Field(ge=0)
    duration_minutes: int = Field(default=0, ge=0)


class Offer(BaseModel):
    """Salon promotional offer. Expiry is checked at selection time only."""
    id: str
    discount_percent: float = Field(ge=0, le=100)
    valid_until: Optional[datetime] = None
    title: str = ""
    is_active: bool = True


class DiscountBreakdown(BaseModel):
    """Result of the checkout discount calculation."""
    subtotal: float
    offer_discount: float = 0.0
    loyalty_percent: int = 0
    loyalty_discount: float = 0.0
    total: int
