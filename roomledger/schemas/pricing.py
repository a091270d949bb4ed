"""Pricing quote schemas."""

from pydantic import BaseModel, Field

from roomledger.models.coupon_usage import CouponUsageContext


class OverrideRequest(BaseModel):
    final_cents: int
    reason: str = ""


class PriceQuoteRequest(BaseModel):
    gross_amount: int = Field(ge=0)
    coupon_code: str | None = Field(default=None, max_length=64)
    use_credits: bool = False
    context: CouponUsageContext = CouponUsageContext.BOOKING
    override: OverrideRequest | None = None


class PriceQuoteResponse(BaseModel):
    gross_amount: int
    discount_amount: int
    net_amount: int
    credits_used: int
    amount_paid: int
    coupon_code: str | None = None
    coupon_applied: bool = False
    coupon_error: str | None = None
    pricing_mode: str
    override_reason: str | None = None
