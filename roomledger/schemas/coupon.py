"""Coupon schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from roomledger.models.coupon import DiscountType
from roomledger.models.coupon_usage import CouponUsageContext


class CouponCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    discount_type: DiscountType
    value: int = Field(ge=0)
    description: str = ""
    single_use_per_user: bool = False
    is_dev_coupon: bool = False
    is_active: bool = True
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    min_amount_cents: int | None = Field(default=None, ge=0)
    max_uses: int | None = Field(default=None, ge=1)


class CouponUpdate(BaseModel):
    description: str | None = None
    is_active: bool | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    min_amount_cents: int | None = Field(default=None, ge=0)
    max_uses: int | None = Field(default=None, ge=1)


class CouponResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    discount_type: str
    value: int
    description: str
    single_use_per_user: bool
    is_dev_coupon: bool
    is_active: bool
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    min_amount_cents: int | None = None
    max_uses: int | None = None
    current_uses: int
    created_at: datetime
    updated_at: datetime


class CouponValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    amount: int = Field(ge=0)
    context: CouponUsageContext = CouponUsageContext.BOOKING


class CouponValidateResponse(BaseModel):
    valid: bool
    code: str
    error_code: str | None = None
    reason: str | None = None
    discount_type: str | None = None
    final_amount: int | None = None
    discount_amount: int | None = None
