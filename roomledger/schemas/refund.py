"""Refund schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class RefundResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    user_id: str
    credits_returned: int
    money_returned: int
    total_refunded: int
    expected_amount: int
    refunded_amount: int
    is_partial: bool
    amount_unknown: bool
    gateway: str
    external_payment_id: str | None = None
    status: str
    needs_review: bool
    review_reason: str | None = None
    reason: str | None = None
    processed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
