"""Refund model: accounting record of what went back to the customer."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, func

from roomledger.core.database import Base
from roomledger.models.shared import UUIDType, generate_uuid


class RefundStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class RefundGateway(str, Enum):
    MANUAL = "manual"
    ASAAS = "asaas"


class Refund(Base):
    """One refund record per booking. Amounts are cents, always based on NET."""

    __tablename__ = "refunds"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    booking_id = Column(
        UUIDType,
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    user_id = Column(String(255), nullable=False, index=True)

    credits_returned = Column(Integer, nullable=False, default=0)
    money_returned = Column(Integer, nullable=False, default=0)
    total_refunded = Column(Integer, nullable=False, default=0)
    expected_amount = Column(Integer, nullable=False, default=0)
    refunded_amount = Column(Integer, nullable=False, default=0)
    is_partial = Column(Boolean, nullable=False, default=False, index=True)
    amount_unknown = Column(Boolean, nullable=False, default=False)

    gateway = Column(String(20), nullable=False, default=RefundGateway.MANUAL.value)
    external_payment_id = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=RefundStatus.PENDING.value, index=True)

    needs_review = Column(Boolean, nullable=False, default=False)
    review_reason = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)
    processed_by = Column(String(255), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
