"""Finalization and cancellation of bookings and credit purchases.

Each public method is one unit of work: the price audit snapshot, credit
movements, coupon usage and payment record are written in a single
transaction which this service commits or rolls back.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roomledger.core.config import LedgerConfig
from roomledger.core.errors import (
    CouponAlreadyUsedError,
    CouponErrorCode,
    CouponRejectedError,
    CouponUsageRaceError,
)
from roomledger.models.booking import (
    Booking,
    BookingStatus,
    FinancialStatus,
    PaymentMethod,
    PricingMode,
)
from roomledger.models.coupon_usage import CouponUsageContext
from roomledger.models.credit import Credit, CreditSource, CreditStatus
from roomledger.models.payment import Payment, PaymentStatus
from roomledger.models.refund import Refund, RefundGateway
from roomledger.models.shared import generate_uuid, utc_now
from roomledger.repositories.booking_repository import BookingRepository
from roomledger.repositories.coupon_repository import normalize_code
from roomledger.repositories.credit_repository import CreditRepository
from roomledger.repositories.payment_repository import (
    PaymentRepository,
    booking_idempotency_key,
    purchase_idempotency_key,
)
from roomledger.repositories.refund_repository import RefundRepository
from roomledger.services.coupon_registry import CouponRegistry
from roomledger.services.coupon_usage_service import (
    CouponRestoreResult,
    CouponUsageConflict,
    CouponUsageLedger,
    CouponUsageMode,
)
from roomledger.services.credit_service import CreditService
from roomledger.services.price_audit import PriceAuditWriter
from roomledger.services.price_override import OverridePrice, is_override_code
from roomledger.services.pricing_service import PriceQuote, PricingService
from roomledger.services.refund_reconciliation import RefundReconciliationService

logger = logging.getLogger(__name__)


@dataclass
class BookingFinalization:
    booking: Booking
    payment: Payment | None = None
    quote: PriceQuote | None = None
    coupon_mode: CouponUsageMode | None = None
    idempotent: bool = False


@dataclass
class CreditPurchaseFinalization:
    credit: Credit
    payment: Payment | None = None
    quote: PriceQuote | None = None
    coupon_mode: CouponUsageMode | None = None
    idempotent: bool = False


@dataclass
class CancellationResult:
    booking: Booking
    coupon: CouponRestoreResult = field(default_factory=lambda: CouponRestoreResult(restored=False))
    credits_restored: int = 0
    refund: Refund | None = None
    already_cancelled: bool = False


class BookingLedgerService:
    """Service for money-moving booking and credit purchase operations."""

    def __init__(self, db: Session, config: LedgerConfig, pending_ttl_minutes: int = 30):
        self.db = db
        self.config = config
        self.pending_ttl = timedelta(minutes=pending_ttl_minutes)
        self.registry = CouponRegistry.for_session(db, config)
        self.ledger = CouponUsageLedger(db, self.registry)
        self.pricing = PricingService(db, config, self.registry)
        self.credit_service = CreditService(db)
        self.refunds = RefundReconciliationService(db, config)
        self.audit_writer = PriceAuditWriter(db)
        self.booking_repo = BookingRepository(db)
        self.credit_repo = CreditRepository(db)
        self.payment_repo = PaymentRepository(db)
        self.refund_repo = RefundRepository(db)

    # --- finalization ---

    def finalize_booking(
        self,
        user_id: str,
        gross_amount: int,
        *,
        booking_id: UUID | None = None,
        room_id: str | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        coupon_code: str | None = None,
        use_credits: bool = False,
        payment_method: PaymentMethod = PaymentMethod.PIX,
        user_email: str | None = None,
        role: str | None = None,
        override: OverridePrice | None = None,
        actor_id: str | None = None,
        request_id: str = "",
    ) -> BookingFinalization:
        """Create a booking with its price audit snapshot and consume coupon and credits.

        Passing the same ``booking_id`` again returns the existing booking.

        Raises:
            CouponRejectedError: The coupon cannot be used by this user.
            CouponAlreadyUsedError: A concurrent request consumed the coupon
                for a different booking.
            OverrideRejectedError: The override was refused.
            ValueError: Not enough credit balance.
        """
        if booking_id is not None:
            existing = self.booking_repo.get_by_id(booking_id)
            if existing is not None:
                return self._existing_booking(existing)
        booking_id = booking_id or generate_uuid()

        try:
            result = self._finalize_booking(
                booking_id,
                user_id,
                gross_amount,
                room_id=room_id,
                start_time=start_time,
                end_time=end_time,
                coupon_code=coupon_code,
                use_credits=use_credits,
                payment_method=payment_method,
                user_email=user_email,
                role=role,
                override=override,
                actor_id=actor_id,
                request_id=request_id,
            )
            self.db.commit()
        except CouponUsageRaceError as exc:
            self.db.rollback()
            resolution = self.ledger.resolve_usage_conflict(
                exc.user_id, exc.coupon_code, CouponUsageContext.BOOKING, booking_id=booking_id
            )
            if resolution.outcome == CouponUsageConflict.IDEMPOTENT:
                existing = self.booking_repo.get_by_id(booking_id)
                if existing is not None:
                    return self._existing_booking(existing)
            logger.warning(
                "Coupon race lost: request_id=%s booking_id=%s code=%s",
                request_id,
                booking_id,
                exc.coupon_code,
            )
            raise CouponAlreadyUsedError(
                exc.coupon_code,
                str(resolution.existing_booking_id) if resolution.existing_booking_id else None,
            ) from exc
        except IntegrityError:
            # A concurrent request with the same booking id committed first.
            self.db.rollback()
            existing = self.booking_repo.get_by_id(booking_id)
            if existing is None:
                raise
            logger.info(
                "Booking finalize retried concurrently: request_id=%s booking_id=%s",
                request_id,
                booking_id,
            )
            return self._existing_booking(existing)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(result.booking)
        logger.info(
            "Booking finalized: request_id=%s booking_id=%s net=%d credits=%d paid=%d mode=%s",
            request_id,
            booking_id,
            result.booking.net_amount,
            result.booking.credits_used,
            result.booking.amount_paid,
            result.booking.pricing_mode,
        )
        return result

    def _finalize_booking(
        self,
        booking_id: UUID,
        user_id: str,
        gross_amount: int,
        *,
        room_id: str | None,
        start_time: datetime | None,
        end_time: datetime | None,
        coupon_code: str | None,
        use_credits: bool,
        payment_method: PaymentMethod,
        user_email: str | None,
        role: str | None,
        override: OverridePrice | None,
        actor_id: str | None,
        request_id: str,
    ) -> BookingFinalization:
        quote = self.pricing.quote(
            user_id,
            gross_amount,
            coupon_code=coupon_code,
            use_credits=use_credits,
            context=CouponUsageContext.BOOKING,
            user_email=user_email,
            role=role,
            booking_id=booking_id,
            override=override,
            request_id=request_id,
        )
        self._reject_unusable_coupon(quote, coupon_code)
        snapshot = quote.snapshot
        now = utc_now()

        fields: dict[str, object] = {
            "id": booking_id,
            "user_id": user_id,
            "room_id": room_id,
            "start_time": start_time,
            "end_time": end_time,
            "status": BookingStatus.PENDING.value,
            "financial_status": FinancialStatus.PENDING.value,
            "payment_method": payment_method.value,
            "pricing_mode": quote.pricing_mode.value,
        }
        if quote.pricing_mode == PricingMode.OVERRIDE:
            fields.update(
                override_final_cents=quote.override_final_cents,
                override_reason=quote.override_reason,
                override_by_user_id=actor_id or user_id,
                override_created_at=now,
            )
        booking = self.booking_repo.create(**fields)
        self.audit_writer.write(booking, snapshot)

        if snapshot.credits_used > 0:
            self.credit_service.consume_credits(user_id, snapshot.credits_used, booking_id)
        coupon_mode = self._consume_coupon(
            quote, user_id, CouponUsageContext.BOOKING, booking_id=booking_id
        )

        payment = None
        if snapshot.amount_paid > 0:
            payment = self._create_payment(
                booking_idempotency_key(booking_id, payment_method.value),
                user_id,
                payment_method,
                snapshot.amount_paid,
                booking_id=booking_id,
            )
            booking.expires_at = now + self.pending_ttl  # type: ignore[assignment]
        else:
            booking.status = BookingStatus.CONFIRMED.value  # type: ignore[assignment]
            booking.financial_status = (  # type: ignore[assignment]
                FinancialStatus.COURTESY.value
                if snapshot.net_amount == 0
                else FinancialStatus.PAID.value
            )
            if snapshot.credits_used > 0:
                booking.payment_method = PaymentMethod.CREDITS.value  # type: ignore[assignment]
        self.db.flush()

        return BookingFinalization(
            booking=booking, payment=payment, quote=quote, coupon_mode=coupon_mode
        )

    def _existing_booking(self, booking: Booking) -> BookingFinalization:
        payment = self.payment_repo.get_latest_for_booking(booking.id)  # type: ignore[arg-type]
        return BookingFinalization(booking=booking, payment=payment, idempotent=True)

    def finalize_credit_purchase(
        self,
        user_id: str,
        amount: int,
        *,
        credit_id: UUID | None = None,
        coupon_code: str | None = None,
        payment_method: PaymentMethod = PaymentMethod.PIX,
        user_email: str | None = None,
        request_id: str = "",
    ) -> CreditPurchaseFinalization:
        """Create a pending credit lot of ``amount`` cents, paid at the discounted price.

        Raises:
            CouponRejectedError: The coupon cannot be used by this user.
            CouponAlreadyUsedError: A concurrent request consumed the coupon
                for a different purchase.
        """
        if credit_id is not None:
            existing = self.credit_repo.get_by_id(credit_id)
            if existing is not None:
                return CreditPurchaseFinalization(credit=existing, idempotent=True)
        credit_id = credit_id or generate_uuid()

        if is_override_code(coupon_code):
            raise CouponRejectedError(
                CouponErrorCode.COUPON_INVALID,
                normalize_code(coupon_code or ""),
                "Administrative pricing does not apply to credit purchases",
            )

        try:
            quote = self.pricing.quote(
                user_id,
                amount,
                coupon_code=coupon_code,
                context=CouponUsageContext.CREDIT_PURCHASE,
                user_email=user_email,
                request_id=request_id,
                credit_id=credit_id,
            )
            self._reject_unusable_coupon(quote, coupon_code)
            snapshot = quote.snapshot

            paid_upfront = snapshot.amount_paid == 0
            credit = self.credit_repo.create(
                id=credit_id,
                user_id=user_id,
                amount=amount,
                remaining_amount=amount,
                source=CreditSource.PURCHASE.value,
                status=(CreditStatus.CONFIRMED if paid_upfront else CreditStatus.PENDING).value,
                description=f"Credit purchase of {amount}",
            )
            self.audit_writer.write(credit, snapshot)
            coupon_mode = self._consume_coupon(
                quote, user_id, CouponUsageContext.CREDIT_PURCHASE, credit_id=credit_id
            )
            payment = None
            if not paid_upfront:
                payment = self._create_payment(
                    purchase_idempotency_key(credit_id, payment_method.value),
                    user_id,
                    payment_method,
                    snapshot.amount_paid,
                    credit_id=credit_id,
                )
            self.db.commit()
        except CouponUsageRaceError as exc:
            self.db.rollback()
            resolution = self.ledger.resolve_usage_conflict(
                exc.user_id,
                exc.coupon_code,
                CouponUsageContext.CREDIT_PURCHASE,
                credit_id=credit_id,
            )
            if resolution.outcome == CouponUsageConflict.IDEMPOTENT:
                existing = self.credit_repo.get_by_id(credit_id)
                if existing is not None:
                    return CreditPurchaseFinalization(credit=existing, idempotent=True)
            raise CouponAlreadyUsedError(exc.coupon_code) from exc
        except IntegrityError:
            self.db.rollback()
            existing = self.credit_repo.get_by_id(credit_id)
            if existing is None:
                raise
            return CreditPurchaseFinalization(credit=existing, idempotent=True)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(credit)
        logger.info(
            "Credit purchase finalized: request_id=%s credit_id=%s amount=%d paid=%d",
            request_id,
            credit_id,
            amount,
            snapshot.amount_paid,
        )
        return CreditPurchaseFinalization(
            credit=credit, payment=payment, quote=quote, coupon_mode=coupon_mode
        )

    @staticmethod
    def _reject_unusable_coupon(quote: PriceQuote, coupon_code: str | None) -> None:
        check = quote.coupon_check
        if check is None or check.can_use or check.code is None:
            return
        raise CouponRejectedError(check.code, normalize_code(coupon_code or ""), check.reason)

    def _consume_coupon(
        self,
        quote: PriceQuote,
        user_id: str,
        context: CouponUsageContext,
        booking_id: UUID | None = None,
        credit_id: UUID | None = None,
    ) -> CouponUsageMode | None:
        coupon = quote.coupon
        if coupon is None:
            return None
        record = self.ledger.record_coupon_usage_idempotent(
            user_id,
            coupon.code,
            context,
            booking_id=booking_id,
            credit_id=credit_id,
            is_dev_coupon=coupon.is_dev_coupon,
        )
        return record.mode

    def _create_payment(
        self,
        idempotency_key: str,
        user_id: str,
        method: PaymentMethod,
        amount: int,
        booking_id: UUID | None = None,
        credit_id: UUID | None = None,
    ) -> Payment:
        existing = self.payment_repo.get_by_idempotency_key(idempotency_key)
        if existing is not None:
            return existing
        return self.payment_repo.create(
            booking_id=booking_id,
            credit_id=credit_id,
            user_id=user_id,
            idempotency_key=idempotency_key,
            method=method.value,
            amount=amount,
            status=PaymentStatus.PENDING.value,
        )

    # --- cancellation ---

    def cancel_booking(
        self,
        booking_id: UUID,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> CancellationResult | None:
        """Cancel a booking and hand back what it consumed.

        Unpaid bookings get their coupon and credits back. Paid bookings keep
        the coupon burned; their credits are restored through the refund
        record, which stays pending until the gateway reports the cash part.
        Returns None when the booking does not exist.
        """
        booking = self.booking_repo.get_by_id(booking_id)
        if booking is None:
            return None
        if booking.status == BookingStatus.CANCELLED.value:
            return CancellationResult(
                booking=booking,
                refund=self.refund_repo.get_by_booking_id(booking_id),
                already_cancelled=True,
            )

        try:
            was_paid = booking.was_paid
            self.booking_repo.mark_cancelled(booking, utc_now(), reason)
            coupon = self.ledger.restore_coupon_usage(booking_id=booking_id, was_paid=was_paid)

            refund = None
            if was_paid:
                application = self.refunds.apply_refund(
                    booking,
                    int(booking.credits_used or 0),
                    gateway=RefundGateway.MANUAL,
                    reason=reason or "Booking cancelled",
                    processed_by=actor_id,
                )
                refund = application.refund
                credits_restored = application.credits_restored
            else:
                credits_restored = int(booking.credits_used or 0)
                self.credit_service.restore_credits(
                    str(booking.user_id),
                    credits_restored,
                    booking_id=booking_id,
                    reason=f"Booking {booking_id} cancelled before payment",
                )
                payment = self.payment_repo.get_latest_for_booking(booking_id)
                if payment is not None and payment.status == PaymentStatus.PENDING.value:
                    self.payment_repo.set_status(payment, PaymentStatus.CANCELED)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(
            "Booking cancelled: booking_id=%s was_paid=%s coupon_restored=%s credits_restored=%d",
            booking_id,
            was_paid,
            coupon.restored,
            credits_restored,
        )
        return CancellationResult(
            booking=booking, coupon=coupon, credits_restored=credits_restored, refund=refund
        )

    def cancel_credit_purchase(self, credit_id: UUID, reason: str | None = None) -> bool:
        """Cancel an unpaid credit purchase and hand its coupon back."""
        credit = self.credit_repo.get_by_id(credit_id)
        if credit is None or credit.status != CreditStatus.PENDING.value:
            return False
        try:
            credit.status = CreditStatus.CANCELLED.value  # type: ignore[assignment]
            credit.remaining_amount = 0  # type: ignore[assignment]
            if reason:
                credit.description = reason  # type: ignore[assignment]
            self.ledger.restore_coupon_usage(credit_id=credit_id, was_paid=False)
            payment = self.payment_repo.get_latest_for_credit(credit_id)
            if payment is not None and payment.status == PaymentStatus.PENDING.value:
                self.payment_repo.set_status(payment, PaymentStatus.CANCELED)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Credit purchase cancelled: credit_id=%s", credit_id)
        return True

    def expire_pending_bookings(self, now: datetime | None = None, limit: int = 100) -> int:
        """Cancel unpaid bookings whose payment window has passed."""
        now = now or utc_now()
        expired = self.booking_repo.get_expired_pending(now, limit=limit)
        count = 0
        for booking in expired:
            result = self.cancel_booking(
                booking.id,  # type: ignore[arg-type]
                reason="Payment window expired",
            )
            if result is not None and not result.already_cancelled:
                count += 1
        return count
