"""Credit repository for data access."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from roomledger.models.credit import Credit, CreditStatus


class CreditRepository:
    """Repository for Credit model. Writes flush into the caller's transaction."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, credit_id: UUID) -> Credit | None:
        """Get a credit lot by ID."""
        return self.db.query(Credit).filter(Credit.id == credit_id).first()

    def create(self, **fields: Any) -> Credit:
        """Add a credit lot to the current transaction."""
        credit = Credit(**fields)
        self.db.add(credit)
        self.db.flush()
        return credit

    def get_available(self, user_id: str, now: datetime) -> list[Credit]:
        """Confirmed, unexpired lots with balance left, soonest-expiring first."""
        return (
            self.db.query(Credit)
            .filter(
                Credit.user_id == user_id,
                Credit.status == CreditStatus.CONFIRMED.value,
                Credit.remaining_amount > 0,
                or_(Credit.expires_at.is_(None), Credit.expires_at > now),
            )
            .order_by(Credit.expires_at.is_(None), Credit.expires_at.asc(), Credit.created_at.asc())
            .all()
        )

    def get_balance(self, user_id: str, now: datetime) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(Credit.remaining_amount), 0))
            .filter(
                Credit.user_id == user_id,
                Credit.status == CreditStatus.CONFIRMED.value,
                Credit.remaining_amount > 0,
                or_(Credit.expires_at.is_(None), Credit.expires_at > now),
            )
            .scalar()
        )
        return int(total or 0)

    def deduct(self, credit: Credit, amount: int) -> Credit:
        credit.remaining_amount = credit.remaining_amount - amount  # type: ignore[assignment]
        self.db.flush()
        return credit

    def get_by_reference_booking(self, booking_id: UUID) -> list[Credit]:
        return (
            self.db.query(Credit)
            .filter(Credit.reference_booking_id == booking_id)
            .order_by(Credit.created_at.asc())
            .all()
        )
