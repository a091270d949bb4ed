"""Refund repository for data access."""

from typing import Any
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from roomledger.models.refund import Refund, RefundStatus


class RefundRepository:
    """Repository for Refund model. Writes flush into the caller's transaction."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_booking_id(self, booking_id: UUID) -> Refund | None:
        return self.db.query(Refund).filter(Refund.booking_id == booking_id).first()

    def create(self, **fields: Any) -> Refund:
        refund = Refund(**fields)
        self.db.add(refund)
        self.db.flush()
        return refund

    def update(self, refund: Refund, **fields: Any) -> Refund:
        for key, value in fields.items():
            setattr(refund, key, value)
        self.db.flush()
        return refund

    def get_needing_review(self, skip: int = 0, limit: int = 100) -> list[Refund]:
        """Refunds that are pending, partial, or flagged by a conflicting notification."""
        return (
            self.db.query(Refund)
            .filter(
                or_(
                    Refund.status == RefundStatus.PENDING.value,
                    Refund.is_partial.is_(True),
                    Refund.needs_review.is_(True),
                )
            )
            .order_by(Refund.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
