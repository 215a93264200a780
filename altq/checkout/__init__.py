from altq.checkout.discounts import (
    best_offer,
    cart_subtotal,
    compute,
    loyalty_tier_percent,
    selectable_offers,
    total_duration,
)

__all__ = [
    "compute",
    "loyalty_tier_percent",
    "cart_subtotal",
    "total_duration",
    "selectable_offers",
    "best_offer",
]
