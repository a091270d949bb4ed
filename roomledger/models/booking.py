"""Booking model with price audit snapshot and override pricing fields."""

from enum import Enum

from sqlalchemy import Column, DateTime, Integer, String, Text, func

from roomledger.core.database import Base
from roomledger.models.shared import PriceAuditMixin, UUIDType, generate_uuid


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class FinancialStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    COURTESY = "courtesy"
    PARTIAL_REFUND = "partial_refund"
    REFUNDED = "refunded"


class PricingMode(str, Enum):
    NORMAL = "normal"
    OVERRIDE = "override"


class PaymentMethod(str, Enum):
    PIX = "pix"
    CARD = "card"
    CREDITS = "credits"


# Financial states a webhook or cancellation must never move away from
TERMINAL_FINANCIAL_STATUSES = frozenset(
    {FinancialStatus.REFUNDED.value, FinancialStatus.COURTESY.value}
)
# Financial states in which money or credit was actually collected
COLLECTED_FINANCIAL_STATUSES = frozenset(
    {
        FinancialStatus.PAID.value,
        FinancialStatus.PARTIAL_REFUND.value,
        FinancialStatus.REFUNDED.value,
    }
)


class Booking(PriceAuditMixin, Base):
    """Room booking. Scheduling fields are owned by the booking flow."""

    __tablename__ = "bookings"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    user_id = Column(String(255), nullable=False, index=True)
    room_id = Column(String(255), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    financial_status = Column(
        String(20), nullable=False, default=FinancialStatus.PENDING.value, index=True
    )
    payment_method = Column(String(20), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)

    pricing_mode = Column(String(20), nullable=False, default=PricingMode.NORMAL.value)
    override_final_cents = Column(Integer, nullable=True)
    override_reason = Column(Text, nullable=True)
    override_by_user_id = Column(String(255), nullable=True)
    override_created_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def was_paid(self) -> bool:
        """Whether money or credit was collected for this booking."""
        return self.financial_status in COLLECTED_FINANCIAL_STATUSES
