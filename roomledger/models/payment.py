"""Payment model: gateway charges for bookings and credit purchases."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func

from roomledger.core.database import Base
from roomledger.models.shared import UUIDType, generate_uuid


class PaymentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REFUNDED = "refunded"
    FAILED = "failed"
    CANCELED = "canceled"


class Payment(Base):
    """Gateway payment attempt. Exactly one of booking_id / credit_id is set."""

    __tablename__ = "payments"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    booking_id = Column(
        UUIDType, ForeignKey("bookings.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    credit_id = Column(
        UUIDType, ForeignKey("credits.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    user_id = Column(String(255), nullable=False, index=True)

    external_id = Column(String(255), nullable=True, index=True)
    idempotency_key = Column(String(255), nullable=True, unique=True)
    method = Column(String(20), nullable=False)
    amount = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
