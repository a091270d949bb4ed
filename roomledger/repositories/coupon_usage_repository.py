"""CouponUsage repository.

Every write here runs inside the caller's transaction: methods flush, they
never commit or roll back.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from roomledger.models.coupon_usage import CouponUsage, CouponUsageContext, CouponUsageStatus


def _targets(
    context: CouponUsageContext, booking_id: UUID | None, credit_id: UUID | None
) -> tuple[UUID | None, UUID | None]:
    """Only the reference matching the context is attached."""
    if context == CouponUsageContext.BOOKING:
        return booking_id, None
    return None, credit_id


class CouponUsageRepository:
    """Repository for CouponUsage model."""

    def __init__(self, db: Session):
        self.db = db

    def get(
        self, user_id: str, coupon_code: str, context: CouponUsageContext
    ) -> CouponUsage | None:
        """Point lookup on the (user, coupon, context) unique key."""
        return (
            self.db.query(CouponUsage)
            .filter(
                CouponUsage.user_id == user_id,
                CouponUsage.coupon_code == coupon_code,
                CouponUsage.context == context.value,
            )
            .first()
        )

    def get_used_by_target(
        self, booking_id: UUID | None = None, credit_id: UUID | None = None
    ) -> CouponUsage | None:
        """Find the USED row attached to a booking or credit purchase."""
        if booking_id is None and credit_id is None:
            return None
        query = self.db.query(CouponUsage).filter(
            CouponUsage.status == CouponUsageStatus.USED.value
        )
        if booking_id is not None:
            query = query.filter(CouponUsage.booking_id == booking_id)
        if credit_id is not None:
            query = query.filter(CouponUsage.credit_id == credit_id)
        return query.first()

    def claim_restored(
        self,
        user_id: str,
        coupon_code: str,
        context: CouponUsageContext,
        booking_id: UUID | None,
        credit_id: UUID | None,
    ) -> int:
        """Flip a RESTORED row back to USED. Returns the number of rows claimed."""
        booking_ref, credit_ref = _targets(context, booking_id, credit_id)
        return (
            self.db.query(CouponUsage)
            .filter(
                CouponUsage.user_id == user_id,
                CouponUsage.coupon_code == coupon_code,
                CouponUsage.context == context.value,
                CouponUsage.status == CouponUsageStatus.RESTORED.value,
            )
            .update(
                {
                    CouponUsage.status: CouponUsageStatus.USED.value,
                    CouponUsage.booking_id: booking_ref,
                    CouponUsage.credit_id: credit_ref,
                    CouponUsage.restored_at: None,
                },
                synchronize_session="fetch",
            )
        )

    def create_used(
        self,
        user_id: str,
        coupon_code: str,
        context: CouponUsageContext,
        booking_id: UUID | None,
        credit_id: UUID | None,
    ) -> CouponUsage:
        """Insert a USED row. A concurrent insert surfaces as IntegrityError on flush."""
        booking_ref, credit_ref = _targets(context, booking_id, credit_id)
        usage = CouponUsage(
            user_id=user_id,
            coupon_code=coupon_code,
            context=context.value,
            booking_id=booking_ref,
            credit_id=credit_ref,
            status=CouponUsageStatus.USED.value,
        )
        self.db.add(usage)
        self.db.flush()
        return usage

    def mark_restored(self, usage_id: UUID, restored_at: datetime) -> int:
        """Release a USED row, detaching it from its booking/credit."""
        return (
            self.db.query(CouponUsage)
            .filter(
                CouponUsage.id == usage_id,
                CouponUsage.status == CouponUsageStatus.USED.value,
            )
            .update(
                {
                    CouponUsage.status: CouponUsageStatus.RESTORED.value,
                    CouponUsage.restored_at: restored_at,
                    CouponUsage.booking_id: None,
                    CouponUsage.credit_id: None,
                },
                synchronize_session="fetch",
            )
        )

    def count_for_key(self, user_id: str, coupon_code: str, context: CouponUsageContext) -> int:
        return (
            self.db.query(CouponUsage)
            .filter(
                CouponUsage.user_id == user_id,
                CouponUsage.coupon_code == coupon_code,
                CouponUsage.context == context.value,
            )
            .count()
        )
