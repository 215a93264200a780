"""
Checkout discount calculator.

Offer and loyalty discounts are both taken from the original subtotal,
never one after the other. The payable total is rounded half-up to a
whole currency unit and never goes below zero.

Offer expiry is a selection-time concern: ``selectable_offers`` and
``best_offer`` filter expired offers, while ``compute`` accepts whatever
offer it is handed.

Usage:
    breakdown = compute(1000, offer, loyalty_points=60)
    breakdown.total  # 700 for a 20% offer
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

from altq.config import CheckoutConfig, settings
from altq.schemas.checkout_schema import CartLine, DiscountBreakdown, Offer

Amount = Union[int, float, Decimal]

_HUNDRED = Decimal(100)


def _to_decimal(value: Amount) -> Decimal:
    # str() keeps 0.1 as 0.1 instead of its binary expansion
    return value if isinstance(value, Decimal) else Decimal(str(value))


def loyalty_tier_percent(points: int, config: Optional[CheckoutConfig] = None) -> int:
    """Discount percentage earned by an accumulated points balance."""
    config = config or settings.checkout
    if points >= config.gold_points:
        return config.gold_percent
    if points >= config.silver_points:
        return config.silver_percent
    return 0


def compute(
    subtotal: Amount,
    offer: Optional[Offer] = None,
    loyalty_points: int = 0,
    config: Optional[CheckoutConfig] = None,
) -> DiscountBreakdown:
    """Compute offer discount, loyalty discount and the payable total.

    Args:
        subtotal: Cart subtotal before any discount.
        offer: The selected promotional offer, if any.
        loyalty_points: Points accumulated by the customer at this salon.

    Returns:
        DiscountBreakdown with the whole-unit ``total``.
    """
    base = _to_decimal(subtotal)
    offer_discount = Decimal(0)
    if offer is not None:
        offer_discount = base * _to_decimal(offer.discount_percent) / _HUNDRED

    loyalty_percent = loyalty_tier_percent(loyalty_points, config)
    loyalty_discount = base * Decimal(loyalty_percent) / _HUNDRED

    raw_total = (base - offer_discount - loyalty_discount).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    total = max(int(raw_total), 0)

    return DiscountBreakdown(
        subtotal=float(base),
        offer_discount=float(offer_discount),
        loyalty_percent=loyalty_percent,
        loyalty_discount=float(loyalty_discount),
        total=total,
    )


def cart_subtotal(lines: Iterable[CartLine]) -> float:
    return float(sum((_to_decimal(line.unit_price) for line in lines), Decimal(0)))


def total_duration(lines: Iterable[CartLine]) -> int:
    """Total service time in minutes for the selected lines."""
    return sum(line.duration_minutes for line in lines)


def is_offer_selectable(offer: Offer, now: Optional[datetime] = None) -> bool:
    if not offer.is_active:
        return False
    if offer.valid_until is None:
        return True
    now = now or datetime.now(timezone.utc)
    valid_until = offer.valid_until
    # Naive timestamps from the API are UTC
    if valid_until.tzinfo is None:
        valid_until = valid_until.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now <= valid_until


def selectable_offers(offers: Iterable[Offer], now: Optional[datetime] = None) -> list[Offer]:
    """Offers the customer may pick at checkout: active and not expired."""
    now = now or datetime.now(timezone.utc)
    return [offer for offer in offers if is_offer_selectable(offer, now)]


def best_offer(offers: Iterable[Offer], now: Optional[datetime] = None) -> Optional[Offer]:
    """The selectable offer with the highest discount, or None."""
    candidates = selectable_offers(offers, now)
    if not candidates:
        return None
    return max(candidates, key=lambda offer: offer.discount_percent)
