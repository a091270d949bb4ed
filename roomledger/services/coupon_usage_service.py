"""Coupon usage ledger.

Tracks coupon consumption per (user, coupon, context) for every coupon except
dev coupons. A row moves between USED and RESTORED instead of being deleted,
so a coupon can be handed back when its booking was never paid while one
burned by a paid booking stays burned.

All writes run inside the caller's transaction. An insert that loses a race
raises ``CouponUsageRaceError``; the caller must roll back and call
``resolve_usage_conflict`` with a fresh read.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roomledger.core.errors import CouponErrorCode, CouponRejectedError, CouponUsageRaceError
from roomledger.models.coupon_usage import CouponUsage, CouponUsageContext, CouponUsageStatus
from roomledger.models.shared import utc_now
from roomledger.repositories.coupon_repository import CouponRepository, normalize_code
from roomledger.repositories.coupon_usage_repository import CouponUsageRepository
from roomledger.services.coupon_registry import CouponConfig, CouponRegistry

logger = logging.getLogger(__name__)


class CouponUsageMode(str, Enum):
    CREATED = "created"
    CLAIMED_RESTORED = "claimed_restored"
    SKIPPED_DEV = "skipped_dev"


class CouponUsageConflict(str, Enum):
    IDEMPOTENT = "idempotent"
    ALREADY_USED = "already_used"


@dataclass(frozen=True)
class CouponUsageCheck:
    can_use: bool
    reason: str | None = None
    code: CouponErrorCode | None = None
    is_dev_coupon: bool = False
    coupon: CouponConfig | None = None


@dataclass(frozen=True)
class CouponUsageRecord:
    ok: bool
    mode: CouponUsageMode


@dataclass(frozen=True)
class CouponRestoreResult:
    restored: bool
    coupon_code: str | None = None


@dataclass(frozen=True)
class CouponConflictResolution:
    outcome: CouponUsageConflict
    existing_booking_id: UUID | None = None
    existing_credit_id: UUID | None = None


class CouponUsageLedger:
    """Check, record and restore coupon usage."""

    def __init__(self, db: Session, registry: CouponRegistry):
        self.db = db
        self.registry = registry
        self.usage_repo = CouponUsageRepository(db)
        self.coupon_repo = CouponRepository(db)

    def check_coupon_usage(
        self,
        user_id: str,
        coupon_code: str,
        context: CouponUsageContext,
        user_email: str | None = None,
        booking_id: UUID | None = None,
        credit_id: UUID | None = None,
    ) -> CouponUsageCheck:
        """Decide whether ``user_id`` may use ``coupon_code`` in ``context``.

        Dev coupons are gated by environment and admin allow-list and never
        consult usage rows. A USED row already attached to ``booking_id`` or
        ``credit_id`` does not block a retry of that same booking or purchase.
        """
        coupon = self.registry.get_coupon_info(coupon_code)
        if coupon is None:
            return CouponUsageCheck(
                can_use=False,
                reason=f"Coupon {normalize_code(coupon_code)} is invalid",
                code=CouponErrorCode.COUPON_INVALID,
            )

        if coupon.is_dev_coupon:
            access = self.registry.can_use_dev_coupon(coupon, user_email)
            if not access.allowed:
                logger.warning("Dev coupon blocked: user_id=%s code=%s", user_id, coupon.code)
                return CouponUsageCheck(
                    can_use=False,
                    reason=access.reason,
                    code=CouponErrorCode.DEV_COUPON_BLOCKED,
                    is_dev_coupon=True,
                    coupon=coupon,
                )
            return CouponUsageCheck(can_use=True, is_dev_coupon=True, coupon=coupon)

        usage = self.usage_repo.get(user_id, coupon.code, context)
        if (
            usage is not None
            and usage.status == CouponUsageStatus.USED.value
            and not _attached_to(usage, context, booking_id, credit_id)
        ):
            return CouponUsageCheck(
                can_use=False,
                reason=f"Coupon {coupon.code} has already been used",
                code=CouponErrorCode.COUPON_ALREADY_USED,
                coupon=coupon,
            )
        return CouponUsageCheck(can_use=True, coupon=coupon)

    def record_coupon_usage_idempotent(
        self,
        user_id: str,
        coupon_code: str,
        context: CouponUsageContext,
        booking_id: UUID | None = None,
        credit_id: UUID | None = None,
        is_dev_coupon: bool = False,
    ) -> CouponUsageRecord:
        """Consume the coupon for a booking or credit purchase.

        Claims a RESTORED row with a conditional update first and inserts a
        new USED row only when there is nothing to claim.

        Raises:
            CouponUsageRaceError: A concurrent request inserted the row first.
                The session must be rolled back by the caller.
            CouponRejectedError: A persisted coupon reached its ``max_uses``.
        """
        if is_dev_coupon:
            return CouponUsageRecord(ok=True, mode=CouponUsageMode.SKIPPED_DEV)

        code = normalize_code(coupon_code)
        claimed = self.usage_repo.claim_restored(user_id, code, context, booking_id, credit_id)
        if claimed > 0:
            self._count_use(code)
            logger.info(
                "Coupon usage claimed: user_id=%s code=%s context=%s booking_id=%s credit_id=%s",
                user_id,
                code,
                context.value,
                booking_id,
                credit_id,
            )
            return CouponUsageRecord(ok=True, mode=CouponUsageMode.CLAIMED_RESTORED)

        try:
            self.usage_repo.create_used(user_id, code, context, booking_id, credit_id)
        except IntegrityError as exc:
            logger.warning(
                "Coupon usage race: user_id=%s code=%s context=%s", user_id, code, context.value
            )
            raise CouponUsageRaceError(user_id, code, context.value) from exc

        self._count_use(code)
        logger.info(
            "Coupon usage created: user_id=%s code=%s context=%s booking_id=%s credit_id=%s",
            user_id,
            code,
            context.value,
            booking_id,
            credit_id,
        )
        return CouponUsageRecord(ok=True, mode=CouponUsageMode.CREATED)

    def restore_coupon_usage(
        self,
        booking_id: UUID | None = None,
        credit_id: UUID | None = None,
        *,
        was_paid: bool,
    ) -> CouponRestoreResult:
        """Hand a coupon back when its booking or purchase ends without payment.

        ``was_paid`` must come from the owner's financial status. A coupon
        consumed by a paid owner is never restored.
        """
        if was_paid:
            return CouponRestoreResult(restored=False)

        usage = self.usage_repo.get_used_by_target(booking_id=booking_id, credit_id=credit_id)
        if usage is None:
            return CouponRestoreResult(restored=False)

        updated = self.usage_repo.mark_restored(usage.id, utc_now())  # type: ignore[arg-type]
        if updated == 0:
            return CouponRestoreResult(restored=False)

        code = str(usage.coupon_code)
        self.coupon_repo.decrement_uses(code)
        logger.info(
            "Coupon usage restored: code=%s booking_id=%s credit_id=%s", code, booking_id, credit_id
        )
        return CouponRestoreResult(restored=True, coupon_code=code)

    def resolve_usage_conflict(
        self,
        user_id: str,
        coupon_code: str,
        context: CouponUsageContext,
        booking_id: UUID | None = None,
        credit_id: UUID | None = None,
    ) -> CouponConflictResolution:
        """Classify a lost insert race. Must run after the failed transaction rolled back."""
        usage = self.usage_repo.get(user_id, normalize_code(coupon_code), context)
        if usage is None or usage.status != CouponUsageStatus.USED.value:
            # The winner was rolled back or restored in the meantime; a retry may succeed.
            return CouponConflictResolution(outcome=CouponUsageConflict.ALREADY_USED)

        same_target = _attached_to(usage, context, booking_id, credit_id)
        return CouponConflictResolution(
            outcome=(
                CouponUsageConflict.IDEMPOTENT if same_target else CouponUsageConflict.ALREADY_USED
            ),
            existing_booking_id=usage.booking_id,  # type: ignore[arg-type]
            existing_credit_id=usage.credit_id,  # type: ignore[arg-type]
        )

    def count_usage(self, user_id: str, coupon_code: str, context: CouponUsageContext) -> int:
        return self.usage_repo.count_for_key(user_id, normalize_code(coupon_code), context)

    def _count_use(self, code: str) -> None:
        """Bump the persisted coupon's global counter, refusing past ``max_uses``."""
        if self.coupon_repo.increment_uses(code) > 0:
            return
        if self.coupon_repo.get_by_code(code) is None:
            return
        logger.warning("Coupon usage cap reached: code=%s", code)
        raise CouponRejectedError(
            CouponErrorCode.COUPON_INVALID, code, f"Coupon {code} has no uses left"
        )


def _attached_to(
    usage: CouponUsage,
    context: CouponUsageContext,
    booking_id: UUID | None,
    credit_id: UUID | None,
) -> bool:
    if context == CouponUsageContext.BOOKING:
        return booking_id is not None and usage.booking_id == booking_id
    return credit_id is not None and usage.credit_id == credit_id

