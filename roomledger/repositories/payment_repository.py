"""Payment repository for data access."""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from roomledger.models.payment import Payment, PaymentStatus


def booking_idempotency_key(booking_id: UUID, method: str) -> str:
    return f"booking:{booking_id}:{method}"


def purchase_idempotency_key(credit_id: UUID, method: str) -> str:
    return f"purchase:{credit_id}:{method}"


class PaymentRepository:
    """Repository for Payment model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, payment_id: UUID) -> Payment | None:
        return self.db.query(Payment).filter(Payment.id == payment_id).first()

    def get_by_external_id(self, external_id: str) -> Payment | None:
        """Get a payment by gateway payment ID."""
        return self.db.query(Payment).filter(Payment.external_id == external_id).first()

    def get_by_idempotency_key(self, key: str) -> Payment | None:
        return self.db.query(Payment).filter(Payment.idempotency_key == key).first()

    def get_latest_for_booking(self, booking_id: UUID) -> Payment | None:
        return (
            self.db.query(Payment)
            .filter(Payment.booking_id == booking_id)
            .order_by(Payment.created_at.desc())
            .first()
        )

    def get_latest_for_credit(self, credit_id: UUID) -> Payment | None:
        return (
            self.db.query(Payment)
            .filter(Payment.credit_id == credit_id)
            .order_by(Payment.created_at.desc())
            .first()
        )

    def create(self, **fields: Any) -> Payment:
        payment = Payment(**fields)
        self.db.add(payment)
        self.db.flush()
        return payment

    def set_status(self, payment: Payment, status: PaymentStatus) -> Payment:
        payment.status = status.value  # type: ignore[assignment]
        self.db.flush()
        return payment
