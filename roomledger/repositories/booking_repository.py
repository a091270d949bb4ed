"""Booking repository for data access."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from roomledger.models.booking import Booking, BookingStatus, FinancialStatus


class BookingRepository:
    """Repository for Booking model. Writes flush into the caller's transaction."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, booking_id: UUID) -> Booking | None:
        """Get a booking by ID."""
        return self.db.query(Booking).filter(Booking.id == booking_id).first()

    def create(self, **fields: Any) -> Booking:
        """Add a booking to the current transaction."""
        booking = Booking(**fields)
        self.db.add(booking)
        self.db.flush()
        return booking

    def get_expired_pending(self, now: datetime, limit: int = 100) -> list[Booking]:
        """Unpaid pending bookings whose hold has lapsed."""
        return (
            self.db.query(Booking)
            .filter(
                Booking.status == BookingStatus.PENDING.value,
                Booking.financial_status == FinancialStatus.PENDING.value,
                Booking.expires_at.isnot(None),
                Booking.expires_at <= now,
            )
            .order_by(Booking.expires_at.asc())
            .limit(limit)
            .all()
        )

    def mark_cancelled(
        self, booking: Booking, cancelled_at: datetime, reason: str | None
    ) -> Booking:
        booking.status = BookingStatus.CANCELLED.value  # type: ignore[assignment]
        booking.cancelled_at = cancelled_at  # type: ignore[assignment]
        booking.cancel_reason = reason  # type: ignore[assignment]
        self.db.flush()
        return booking

    def set_financial_status(self, booking: Booking, status: FinancialStatus) -> Booking:
        booking.financial_status = status.value  # type: ignore[assignment]
        self.db.flush()
        return booking
