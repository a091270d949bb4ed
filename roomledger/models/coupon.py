"""Coupon model: the persisted, authoritative coupon store."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func

from roomledger.core.database import Base
from roomledger.models.shared import UUIDType, generate_uuid


class DiscountType(str, Enum):
    FIXED = "fixed"
    PERCENT = "percent"
    PRICE_OVERRIDE = "price_override"


class Coupon(Base):
    """Coupon definition with activation window and global usage cap."""

    __tablename__ = "coupons"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    code = Column(String(64), unique=True, index=True, nullable=False)
    discount_type = Column(String(20), nullable=False)
    # Cents for fixed/price_override, percentage points for percent
    value = Column(Integer, nullable=False)
    description = Column(Text, nullable=False, default="")

    single_use_per_user = Column(Boolean, nullable=False, default=False)
    is_dev_coupon = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True, index=True)
    min_amount_cents = Column(Integer, nullable=True)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
