"""Discount engine: turns an amount and a resolved coupon into a final price.

Amounts are integer cents. For every ``amount >= 0`` the result satisfies
``final_amount + discount_amount == amount``: the discount is derived from the
floored final amount, never applied on its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from roomledger.models.coupon import DiscountType

if TYPE_CHECKING:
    from roomledger.services.coupon_registry import CouponConfig, CouponRegistry

# Smallest charge the payment gateway accepts (PIX)
MIN_PAYMENT_AMOUNT_CENTS = 100


@dataclass(frozen=True)
class DiscountResult:
    final_amount: int
    discount_amount: int
    coupon_applied: bool


def round_half_away(value: Decimal) -> int:
    """Round to the nearest integer, ties away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount: int, percent: int) -> int:
    return round_half_away(Decimal(amount) * Decimal(percent) / Decimal(100))


def apply_discount(
    amount: int,
    coupon: CouponConfig | None,
    min_payment_cents: int = MIN_PAYMENT_AMOUNT_CENTS,
) -> DiscountResult:
    """Apply a coupon to ``amount``.

    Fixed and percent coupons never push an amount of at least
    ``min_payment_cents`` below that floor; amounts already under it are
    floored at zero. A price override coupon sets the final amount directly
    and bypasses both the floor and the coupon minimum.
    """
    if coupon is None:
        return DiscountResult(final_amount=amount, discount_amount=0, coupon_applied=False)

    if coupon.discount_type == DiscountType.PRICE_OVERRIDE:
        final = max(0, coupon.value)
        return DiscountResult(
            final_amount=final,
            discount_amount=max(0, amount - final),
            coupon_applied=True,
        )

    if coupon.min_amount_cents is not None and amount < coupon.min_amount_cents:
        return DiscountResult(final_amount=amount, discount_amount=0, coupon_applied=False)

    if coupon.discount_type == DiscountType.PERCENT:
        raw_discount = percent_of(amount, coupon.value)
    else:
        raw_discount = coupon.value

    floor = min_payment_cents if amount >= min_payment_cents else 0
    final = max(floor, amount - raw_discount)
    return DiscountResult(
        final_amount=final,
        discount_amount=amount - final,
        coupon_applied=True,
    )


def apply_discount_by_code(
    amount: int,
    coupon_code: str | None,
    registry: CouponRegistry,
    min_payment_cents: int = MIN_PAYMENT_AMOUNT_CENTS,
) -> DiscountResult:
    """Resolve ``coupon_code`` and apply it. Unknown codes leave the amount untouched."""
    coupon = registry.get_coupon_info(coupon_code) if coupon_code else None
    return apply_discount(amount, coupon, min_payment_cents)
