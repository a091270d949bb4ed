"""Credit balance operations used by pricing, finalization and refunds."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from roomledger.models.credit import Credit, CreditSource, CreditStatus
from roomledger.models.shared import utc_now
from roomledger.repositories.credit_repository import CreditRepository

logger = logging.getLogger(__name__)


class CreditService:
    """Reads and moves credit balance inside the caller's transaction."""

    def __init__(self, db: Session):
        self.db = db
        self.credit_repo = CreditRepository(db)

    def get_balance(self, user_id: str) -> int:
        return self.credit_repo.get_balance(user_id, utc_now())

    def consume_credits(self, user_id: str, amount: int, booking_id: UUID | None = None) -> int:
        """Spend ``amount`` cents, soonest-expiring lots first.

        Raises:
            ValueError: If the available balance is lower than ``amount``.
        """
        if amount <= 0:
            return 0

        lots = self.credit_repo.get_available(user_id, utc_now())
        available = sum(int(lot.remaining_amount) for lot in lots)
        if available < amount:
            raise ValueError(
                f"Insufficient credit balance: available {available}, requested {amount}"
            )

        remaining = amount
        for lot in lots:
            if remaining == 0:
                break
            take = min(int(lot.remaining_amount), remaining)
            self.credit_repo.deduct(lot, take)
            remaining -= take

        logger.info(
            "Credits consumed: user_id=%s amount=%d booking_id=%s", user_id, amount, booking_id
        )
        return amount

    def restore_credits(
        self,
        user_id: str,
        amount: int,
        booking_id: UUID | None = None,
        reason: str | None = None,
    ) -> Credit | None:
        """Return ``amount`` cents to the user as a new confirmed refund lot."""
        if amount <= 0:
            return None

        credit = self.credit_repo.create(
            user_id=user_id,
            amount=amount,
            remaining_amount=amount,
            source=CreditSource.REFUND.value,
            status=CreditStatus.CONFIRMED.value,
            reference_booking_id=booking_id,
            description=reason,
        )
        logger.info(
            "Credits restored: user_id=%s amount=%d booking_id=%s", user_id, amount, booking_id
        )
        return credit
