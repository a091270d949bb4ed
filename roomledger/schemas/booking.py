"""Booking cancellation schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class BookingCancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class BookingCancelResponse(BaseModel):
    booking_id: UUID
    status: str
    financial_status: str
    cancelled_at: datetime | None = None
    coupon_restored: bool
    coupon_code: str | None = None
    credits_restored: int
    refund_id: UUID | None = None
    already_cancelled: bool = False
