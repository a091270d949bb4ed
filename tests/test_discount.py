"""Tests for the discount engine."""

from decimal import Decimal

import pytest

from roomledger.core.config import LedgerConfig
from roomledger.models.coupon import DiscountType
from roomledger.services.coupon_registry import CouponConfig, CouponRegistry, FallbackCouponSource
from roomledger.services.discount import (
    DiscountResult,
    apply_discount,
    apply_discount_by_code,
    percent_of,
    round_half_away,
)


def _coupon(discount_type: DiscountType, value: int, **kwargs) -> CouponConfig:
    return CouponConfig(
        code="TEST", discount_type=discount_type, value=value, description="test", **kwargs
    )


class TestRounding:
    def test_half_rounds_away_from_zero(self):
        assert round_half_away(Decimal("2.5")) == 3
        assert round_half_away(Decimal("-2.5")) == -3
        assert round_half_away(Decimal("2.49")) == 2

    def test_percent_of(self):
        assert percent_of(10000, 15) == 1500
        # 15% of 333 = 49.95
        assert percent_of(333, 15) == 50
        assert percent_of(0, 50) == 0


class TestApplyDiscount:
    def test_no_coupon(self):
        result = apply_discount(5000, None)
        assert result == DiscountResult(final_amount=5000, discount_amount=0, coupon_applied=False)

    def test_percent(self):
        result = apply_discount(10000, _coupon(DiscountType.PERCENT, 15))
        assert result.discount_amount == 1500
        assert result.final_amount == 8500
        assert result.coupon_applied is True

    def test_fixed_floored_at_gateway_minimum(self):
        result = apply_discount(300, _coupon(DiscountType.FIXED, 500))
        assert result.final_amount == 100
        assert result.discount_amount == 200
        assert result.coupon_applied is True

    def test_fixed_below_minimum_floors_at_zero(self):
        result = apply_discount(80, _coupon(DiscountType.FIXED, 500))
        assert result.final_amount == 0
        assert result.discount_amount == 80

    def test_full_percent_keeps_minimum(self):
        result = apply_discount(5000, _coupon(DiscountType.PERCENT, 100))
        assert result.final_amount == 100
        assert result.discount_amount == 4900

    def test_price_override_sets_final_amount(self):
        result = apply_discount(5000, _coupon(DiscountType.PRICE_OVERRIDE, 50))
        assert result.final_amount == 50
        assert result.discount_amount == 4950

    def test_price_override_to_zero(self):
        result = apply_discount(5000, _coupon(DiscountType.PRICE_OVERRIDE, 0))
        assert result.final_amount == 0
        assert result.discount_amount == 5000

    def test_price_override_above_amount_gives_no_discount(self):
        result = apply_discount(5000, _coupon(DiscountType.PRICE_OVERRIDE, 7000))
        assert result.final_amount == 7000
        assert result.discount_amount == 0

    def test_min_amount_not_reached(self):
        coupon = _coupon(DiscountType.FIXED, 1000, min_amount_cents=5000)
        result = apply_discount(4999, coupon)
        assert result == DiscountResult(final_amount=4999, discount_amount=0, coupon_applied=False)

    def test_min_amount_reached(self):
        coupon = _coupon(DiscountType.FIXED, 1000, min_amount_cents=5000)
        result = apply_discount(5000, coupon)
        assert result.final_amount == 4000
        assert result.coupon_applied is True

    def test_custom_minimum(self):
        result = apply_discount(1000, _coupon(DiscountType.FIXED, 1000), min_payment_cents=500)
        assert result.final_amount == 500

    def test_zero_amount(self):
        result = apply_discount(0, _coupon(DiscountType.PERCENT, 10))
        assert result.final_amount == 0
        assert result.discount_amount == 0

    @pytest.mark.parametrize("amount", [0, 1, 99, 100, 101, 333, 999, 10000, 123457])
    @pytest.mark.parametrize(
        "coupon",
        [
            _coupon(DiscountType.PERCENT, 15),
            _coupon(DiscountType.PERCENT, 100),
            _coupon(DiscountType.FIXED, 500),
            _coupon(DiscountType.PRICE_OVERRIDE, 250),
        ],
    )
    def test_final_plus_discount_is_amount_or_override(self, amount, coupon):
        result = apply_discount(amount, coupon)
        assert result.final_amount >= 0
        assert result.discount_amount >= 0
        if coupon.discount_type == DiscountType.PRICE_OVERRIDE:
            assert result.final_amount == 250
        else:
            assert result.final_amount + result.discount_amount == amount
            if amount >= 100:
                assert result.final_amount >= 100


class TestApplyDiscountByCode:
    def test_known_code(self):
        registry = CouponRegistry([FallbackCouponSource()], LedgerConfig())
        result = apply_discount_by_code(10000, "primeiracompra", registry)
        assert result.final_amount == 8500

    def test_unknown_code_leaves_amount(self):
        registry = CouponRegistry([FallbackCouponSource()], LedgerConfig())
        result = apply_discount_by_code(10000, "NOPE", registry)
        assert result == DiscountResult(final_amount=10000, discount_amount=0, coupon_applied=False)

    def test_no_code(self):
        registry = CouponRegistry([FallbackCouponSource()], LedgerConfig())
        assert apply_discount_by_code(10000, None, registry).coupon_applied is False
