"""CouponUsage model: one row per (user, coupon, context)."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, func

from roomledger.core.database import Base
from roomledger.models.shared import UUIDType, generate_uuid


class CouponUsageContext(str, Enum):
    BOOKING = "booking"
    CREDIT_PURCHASE = "credit_purchase"


class CouponUsageStatus(str, Enum):
    USED = "used"
    RESTORED = "restored"


class CouponUsage(Base):
    """Tracks whether a user's coupon is consumed or available again in a context."""

    __tablename__ = "coupon_usages"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "coupon_code", "context", name="uq_coupon_usages_user_code_context"
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    user_id = Column(String(255), nullable=False, index=True)
    coupon_code = Column(String(64), nullable=False, index=True)
    context = Column(String(20), nullable=False)

    booking_id = Column(
        UUIDType, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True
    )
    credit_id = Column(
        UUIDType, ForeignKey("credits.id", ondelete="SET NULL"), nullable=True, index=True
    )

    status = Column(String(20), nullable=False, default=CouponUsageStatus.USED.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    restored_at = Column(DateTime(timezone=True), nullable=True)
