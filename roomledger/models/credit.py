"""Credit model: prepaid credit lots owned by a user."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func

from roomledger.core.database import Base
from roomledger.models.shared import PriceAuditMixin, UUIDType, generate_uuid


class CreditSource(str, Enum):
    PURCHASE = "purchase"
    REFUND = "refund"
    MANUAL = "manual"


class CreditStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Credit(PriceAuditMixin, Base):
    """A lot of account credit (cents).

    Purchased lots carry the price audit snapshot of the purchase; refund lots
    point at the booking whose cancellation returned them.
    """

    __tablename__ = "credits"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    user_id = Column(String(255), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    remaining_amount = Column(Integer, nullable=False)
    source = Column(String(20), nullable=False, default=CreditSource.PURCHASE.value)
    status = Column(String(20), nullable=False, default=CreditStatus.PENDING.value, index=True)
    reference_booking_id = Column(
        UUIDType, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True
    )
    description = Column(Text, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
