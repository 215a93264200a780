"""Tests for the checkout discount calculator and offer selection."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from altq.checkout import (
    best_offer,
    cart_subtotal,
    compute,
    loyalty_tier_percent,
    selectable_offers,
    total_duration,
)
from altq.schemas.checkout_schema import CartLine, Offer

NOW = datetime(2025, 3, 15, 10, 0, tzinfo=timezone.utc)


def _offer(percent, offer_id="off-1", **kwargs) -> Offer:
    return Offer(id=offer_id, discount_percent=percent, **kwargs)


class TestLoyaltyTier:
    @pytest.mark.parametrize("points,expected", [
        (0, 0), (49, 0), (50, 10), (99, 10), (100, 20), (1500, 20),
    ])
    def test_tiers(self, points, expected):
        assert loyalty_tier_percent(points) == expected


class TestCompute:
    def test_offer_and_silver_tier(self):
        result = compute(1000, _offer(20), 60)
        assert result.offer_discount == 200
        assert result.loyalty_percent == 10
        assert result.loyalty_discount == 100
        assert result.total == 700

    def test_gold_tier_without_offer(self):
        result = compute(1000, None, 150)
        assert result.offer_discount == 0
        assert result.loyalty_discount == 200
        assert result.total == 800

    def test_total_clamped_at_zero(self):
        result = compute(50, _offer(100), 100)
        assert result.total == 0

    def test_discounts_not_compounded(self):
        # 30% then 20% on the remainder would give 560
        result = compute(1000, _offer(30), 100)
        assert result.total == 500

    def test_no_discounts(self):
        result = compute(499, None, 0)
        assert result.total == 499
        assert result.offer_discount == 0
        assert result.loyalty_discount == 0

    @pytest.mark.parametrize("subtotal,percent,expected", [
        (105, 10, 95),     # 94.5 rounds up
        (115, 10, 104),    # 103.5 rounds up
        (1001, 15, 851),   # 850.85
        (333, 33, 223),    # 223.11
    ])
    def test_round_half_up(self, subtotal, percent, expected):
        assert compute(subtotal, _offer(percent), 0).total == expected

    def test_decimal_subtotal(self):
        assert compute(Decimal("99.50"), None, 0).total == 100

    def test_expired_offer_still_applied(self):
        expired = _offer(50, valid_until=NOW - timedelta(days=1))
        assert compute(200, expired, 0).total == 100


class TestCart:
    def test_subtotal_and_duration(self):
        lines = [
            CartLine(service_id="haircut", unit_price=300, duration_minutes=30),
            CartLine(service_id="beard", unit_price=150.5, duration_minutes=15),
        ]
        assert cart_subtotal(lines) == 450.5
        assert total_duration(lines) == 45

    def test_empty_cart(self):
        assert cart_subtotal([]) == 0
        assert total_duration([]) == 0

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError):
            CartLine(service_id="x", unit_price=-1)


class TestOfferSelection:
    def test_expired_and_inactive_excluded(self):
        offers = [
            _offer(10, "open"),
            _offer(20, "future", valid_until=NOW + timedelta(days=2)),
            _offer(30, "expired", valid_until=NOW - timedelta(seconds=1)),
            _offer(40, "inactive", is_active=False),
        ]
        ids = [offer.id for offer in selectable_offers(offers, NOW)]
        assert ids == ["open", "future"]

    def test_naive_expiry_treated_as_utc(self):
        offer = _offer(10, valid_until=datetime(2025, 3, 15, 11, 0))
        assert selectable_offers([offer], NOW) == [offer]

    def test_best_offer_picks_highest(self):
        offers = [_offer(10, "a"), _offer(25, "b"), _offer(60, "c", valid_until=NOW - timedelta(days=1))]
        assert best_offer(offers, NOW).id == "b"

    def test_best_offer_none(self):
        assert best_offer([], NOW) is None
