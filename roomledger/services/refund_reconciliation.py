"""Refund reconciliation.

``reconcile_refund`` is the pure engine: it compares what the gateway reports
against the booking's price audit snapshot and splits the refund between
restored credits and returned money. ``RefundReconciliationService`` applies
outcomes to the refund record idempotently and drives the gateway webhook.

The expected amount is always the snapshot's NET amount. ``net_amount``
already contains the credits used, so adding them again would double count.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from roomledger.core.config import LedgerConfig
from roomledger.models.booking import (
    TERMINAL_FINANCIAL_STATUSES,
    Booking,
    BookingStatus,
    FinancialStatus,
)
from roomledger.models.credit import Credit, CreditStatus
from roomledger.models.payment import Payment, PaymentStatus
from roomledger.models.refund import Refund, RefundGateway, RefundStatus
from roomledger.models.shared import utc_now
from roomledger.models.webhook_event import WebhookEventStatus
from roomledger.repositories.booking_repository import BookingRepository
from roomledger.repositories.credit_repository import CreditRepository
from roomledger.repositories.payment_repository import PaymentRepository
from roomledger.repositories.refund_repository import RefundRepository
from roomledger.repositories.webhook_event_repository import WebhookEventRepository
from roomledger.services.credit_service import CreditService
from roomledger.services.price_audit import PriceAuditSnapshot

logger = logging.getLogger(__name__)

CONFIRMATION_EVENTS = frozenset({"PAYMENT_CONFIRMED", "PAYMENT_RECEIVED"})
REFUND_EVENTS = frozenset(
    {
        "PAYMENT_REFUNDED",
        "PAYMENT_PARTIALLY_REFUNDED",
        "PAYMENT_CHARGEBACK_REQUESTED",
        "PAYMENT_CHARGEBACK_DISPUTE",
    }
)

# Gateway fields holding a refunded amount, most specific first
REFUND_AMOUNT_FIELDS = ("refundedValue", "chargebackValue", "value")

PURCHASE_REFERENCE_PREFIX = "purchase:"
BOOKING_REFERENCE_PREFIX = "booking:"


@dataclass(frozen=True)
class RefundOutcome:
    expected_amount: int
    refunded_amount: int
    tolerance: Decimal
    is_partial: bool
    amount_unknown: bool
    credits_restored: int
    money_returned: int
    status: RefundStatus


@dataclass
class RefundApplication:
    """What happened to a booking's refund record."""

    refund: Refund
    action: str  # created, upgraded, duplicate, flagged
    credits_restored: int = 0

    @property
    def changed(self) -> bool:
        return self.action in ("created", "upgraded")


@dataclass
class WebhookResult:
    status: WebhookEventStatus
    detail: str | None = None
    duplicate: bool = False
    booking_id: UUID | None = None
    credit_id: UUID | None = None
    refund_id: UUID | None = None
    refund_changed: bool = False


def reconcile_refund(
    snapshot: PriceAuditSnapshot,
    reported_amount: int,
    amount_unknown: bool = False,
    config: LedgerConfig | None = None,
) -> RefundOutcome:
    """Split a reported refund against the snapshot, credits first.

    An unknown amount is never treated as a full refund: it reconciles as
    zero and is always partial, leaving the refund pending for review.
    """
    config = config or LedgerConfig()
    expected = snapshot.net_amount
    refunded = 0 if amount_unknown else max(0, reported_amount)

    tolerance = max(
        Decimal(config.refund_tolerance_min_cents),
        Decimal(expected) * Decimal(str(config.refund_tolerance_rate)),
    )
    is_partial = amount_unknown or Decimal(refunded) < Decimal(expected) - tolerance

    credits_restored = min(snapshot.credits_used, refunded)
    money_returned = max(0, refunded - credits_restored)

    return RefundOutcome(
        expected_amount=expected,
        refunded_amount=refunded,
        tolerance=tolerance,
        is_partial=is_partial,
        amount_unknown=amount_unknown,
        credits_restored=credits_restored,
        money_returned=money_returned,
        status=RefundStatus.PENDING if is_partial else RefundStatus.COMPLETED,
    )


def _to_cents(value: Any) -> int | None:
    """Positive integer cents, or None for missing, zero and malformed values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    cents = int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return cents if cents > 0 else None


def extract_refunded_amount(
    payment: Mapping[str, Any] | None, fallback_amount: int | None = None
) -> tuple[int, bool]:
    """Read the refunded amount from a gateway payment object.

    Returns ``(amount, amount_unknown)``. Falls back to the local payment
    record when the payload carries no usable amount.
    """
    for field in REFUND_AMOUNT_FIELDS:
        amount = _to_cents((payment or {}).get(field))
        if amount is not None:
            return amount, False
    if fallback_amount is not None and fallback_amount > 0:
        return fallback_amount, False
    return 0, True


def webhook_event_key(payload: Mapping[str, Any]) -> str:
    """Deduplication key for a gateway notification."""
    event_id = payload.get("id")
    if event_id:
        return str(event_id)
    payment = payload.get("payment") or {}
    amount = next((payment.get(field) for field in REFUND_AMOUNT_FIELDS if payment.get(field)), "")
    return f"{payload.get('event') or 'UNKNOWN'}:{payment.get('id') or ''}:{amount}"


def _parse_uuid(value: str) -> UUID | None:
    try:
        return UUID(value)
    except ValueError:
        return None


class RefundReconciliationService:
    """Applies refund outcomes and gateway notifications to the ledger.

    Methods flush into the caller's session; the caller commits.
    """

    def __init__(self, db: Session, config: LedgerConfig):
        self.db = db
        self.config = config
        self.booking_repo = BookingRepository(db)
        self.credit_repo = CreditRepository(db)
        self.payment_repo = PaymentRepository(db)
        self.refund_repo = RefundRepository(db)
        self.event_repo = WebhookEventRepository(db)
        self.credit_service = CreditService(db)

    def apply_refund(
        self,
        booking: Booking,
        reported_amount: int,
        amount_unknown: bool = False,
        gateway: RefundGateway = RefundGateway.MANUAL,
        external_payment_id: str | None = None,
        reason: str | None = None,
        processed_by: str | None = None,
    ) -> RefundApplication:
        """Reconcile a refund for ``booking`` and restore credits exactly once.

        A completed refund never changes again: a different amount only flags
        it for review. A pending refund is upgraded by a larger amount, and
        only the credit difference is restored.
        """
        outcome = reconcile_refund(
            PriceAuditSnapshot.from_entity(booking), reported_amount, amount_unknown, self.config
        )
        refund = self.refund_repo.get_by_booking_id(booking.id)  # type: ignore[arg-type]

        if refund is None:
            restored = self._restore(booking, outcome.credits_restored, reason)
            refund = self.refund_repo.create(
                booking_id=booking.id,
                user_id=booking.user_id,
                credits_returned=outcome.credits_restored,
                money_returned=outcome.money_returned,
                total_refunded=outcome.credits_restored + outcome.money_returned,
                expected_amount=outcome.expected_amount,
                refunded_amount=outcome.refunded_amount,
                is_partial=outcome.is_partial,
                amount_unknown=outcome.amount_unknown,
                gateway=gateway.value,
                external_payment_id=external_payment_id,
                status=outcome.status.value,
                reason=reason,
                processed_by=processed_by,
                processed_at=utc_now() if outcome.status == RefundStatus.COMPLETED else None,
            )
            self._settle_booking(booking, outcome)
            logger.info(
                "Refund created: booking_id=%s expected=%d refunded=%d credits=%d money=%d "
                "status=%s unknown=%s",
                booking.id,
                outcome.expected_amount,
                outcome.refunded_amount,
                outcome.credits_restored,
                outcome.money_returned,
                outcome.status.value,
                outcome.amount_unknown,
            )
            return RefundApplication(refund=refund, action="created", credits_restored=restored)

        if self._is_same_report(refund, outcome):
            logger.info("Refund already recorded: booking_id=%s", booking.id)
            return RefundApplication(refund=refund, action="duplicate")

        upgradable = (
            refund.status != RefundStatus.COMPLETED.value
            and not outcome.amount_unknown
            and outcome.refunded_amount > refund.refunded_amount
        )
        if not upgradable:
            return self._flag(refund, outcome)

        delta = max(0, outcome.credits_restored - int(refund.credits_returned))
        restored = self._restore(booking, delta, reason)
        credits_returned = int(refund.credits_returned) + restored
        money_returned = max(0, outcome.refunded_amount - credits_returned)
        self.refund_repo.update(
            refund,
            credits_returned=credits_returned,
            money_returned=money_returned,
            total_refunded=credits_returned + money_returned,
            refunded_amount=outcome.refunded_amount,
            is_partial=outcome.is_partial,
            amount_unknown=False,
            status=outcome.status.value,
            gateway=gateway.value,
            external_payment_id=external_payment_id or refund.external_payment_id,
            processed_at=utc_now() if outcome.status == RefundStatus.COMPLETED else None,
        )
        self._settle_booking(booking, outcome)
        logger.info(
            "Refund upgraded: booking_id=%s refunded=%d credit_delta=%d status=%s",
            booking.id,
            outcome.refunded_amount,
            restored,
            outcome.status.value,
        )
        return RefundApplication(refund=refund, action="upgraded", credits_restored=restored)

    @staticmethod
    def _is_same_report(refund: Refund, outcome: RefundOutcome) -> bool:
        if outcome.amount_unknown:
            return bool(refund.amount_unknown)
        return not refund.amount_unknown and refund.refunded_amount == outcome.refunded_amount

    def _flag(self, refund: Refund, outcome: RefundOutcome) -> RefundApplication:
        reported = "unknown" if outcome.amount_unknown else str(outcome.refunded_amount)
        review_reason = (
            f"Gateway reported refund of {reported} on {refund.status} refund "
            f"of {refund.refunded_amount}"
        )
        logger.warning(
            "Refund conflict flagged for review: booking_id=%s status=%s recorded=%d reported=%s",
            refund.booking_id,
            refund.status,
            refund.refunded_amount,
            reported,
        )
        self.refund_repo.update(refund, needs_review=True, review_reason=review_reason)
        return RefundApplication(refund=refund, action="flagged")

    def _restore(self, booking: Booking, amount: int, reason: str | None) -> int:
        if amount <= 0:
            return 0
        self.credit_service.restore_credits(
            str(booking.user_id),
            amount,
            booking_id=booking.id,  # type: ignore[arg-type]
            reason=reason or f"Refund for booking {booking.id}",
        )
        return amount

    def _settle_booking(self, booking: Booking, outcome: RefundOutcome) -> None:
        if booking.financial_status not in TERMINAL_FINANCIAL_STATUSES:
            financial_status = (
                FinancialStatus.REFUNDED
                if outcome.status == RefundStatus.COMPLETED
                else FinancialStatus.PARTIAL_REFUND
            )
            self.booking_repo.set_financial_status(booking, financial_status)
        if booking.status != BookingStatus.CANCELLED.value:
            self.booking_repo.mark_cancelled(booking, utc_now(), "refunded")
        if outcome.status == RefundStatus.COMPLETED:
            payment = self.payment_repo.get_latest_for_booking(booking.id)  # type: ignore[arg-type]
            if payment is not None and payment.status == PaymentStatus.APPROVED.value:
                self.payment_repo.set_status(payment, PaymentStatus.REFUNDED)

    # --- gateway webhook ---

    def process_webhook(self, payload: Mapping[str, Any]) -> WebhookResult:
        """Handle one gateway notification exactly once.

        Never raises for business conditions: unknown references, unknown
        events and conflicting amounts all resolve to a recorded status.
        """
        event_key = webhook_event_key(payload)
        existing = self.event_repo.get_by_key(event_key)
        if existing is not None:
            logger.warning("Duplicate webhook ignored: event_key=%s", event_key)
            return WebhookResult(
                status=WebhookEventStatus(existing.status), detail="duplicate", duplicate=True
            )

        event_type = str(payload.get("event") or "UNKNOWN")
        payment_data: Mapping[str, Any] = payload.get("payment") or {}
        external_payment_id = payment_data.get("id")
        event = self.event_repo.create(event_key, event_type, external_payment_id, dict(payload))

        result = self._dispatch(event_type, payment_data)
        self.event_repo.mark(event, result.status, utc_now(), result.detail)
        logger.info(
            "Webhook processed: event_key=%s event=%s status=%s detail=%s",
            event_key,
            event_type,
            result.status.value,
            result.detail,
        )
        return result

    def _dispatch(self, event_type: str, payment_data: Mapping[str, Any]) -> WebhookResult:
        if event_type not in CONFIRMATION_EVENTS and event_type not in REFUND_EVENTS:
            return WebhookResult(status=WebhookEventStatus.PROCESSED, detail="event_ignored")

        external_id = payment_data.get("id")
        reference = str(payment_data.get("externalReference") or "").strip()
        local_payment = self.payment_repo.get_by_external_id(external_id) if external_id else None

        booking_id, credit_id = self._parse_reference(reference)
        if booking_id is None and credit_id is None and local_payment is not None:
            booking_id = local_payment.booking_id  # type: ignore[assignment]
            credit_id = local_payment.credit_id  # type: ignore[assignment]
        if booking_id is None and credit_id is None:
            logger.warning("Webhook without usable reference: payment_id=%s", external_id)
            return WebhookResult(status=WebhookEventStatus.IGNORED_NO_REFERENCE)

        if credit_id is not None:
            credit = self.credit_repo.get_by_id(credit_id)
            if credit is None:
                logger.warning("Webhook for unknown credit purchase: credit_id=%s", credit_id)
                return WebhookResult(
                    status=WebhookEventStatus.IGNORED_NOT_FOUND, credit_id=credit_id
                )
            if event_type in CONFIRMATION_EVENTS:
                return self._confirm_credit_purchase(credit, external_id, local_payment)
            logger.warning("Refund for credit purchase needs review: credit_id=%s", credit_id)
            return WebhookResult(
                status=WebhookEventStatus.PROCESSED, detail="manual_review", credit_id=credit_id
            )

        booking = self.booking_repo.get_by_id(booking_id)  # type: ignore[arg-type]
        if booking is None:
            logger.warning("Webhook for unknown booking: booking_id=%s", booking_id)
            return WebhookResult(status=WebhookEventStatus.IGNORED_NOT_FOUND, booking_id=booking_id)

        if local_payment is None:
            local_payment = self.payment_repo.get_latest_for_booking(
                booking_id  # type: ignore[arg-type]
            )

        if event_type in CONFIRMATION_EVENTS:
            return self._confirm_booking(booking, external_id, local_payment)

        if booking.financial_status == FinancialStatus.PENDING.value:
            logger.warning("Refund reported for unpaid booking: booking_id=%s", booking.id)
            return WebhookResult(
                status=WebhookEventStatus.PROCESSED,
                detail="refund_without_payment",
                booking_id=booking.id,  # type: ignore[arg-type]
            )

        fallback = int(local_payment.amount) if local_payment is not None else None
        amount, unknown = extract_refunded_amount(payment_data, fallback)
        application = self.apply_refund(
            booking,
            amount,
            amount_unknown=unknown,
            gateway=RefundGateway.ASAAS,
            external_payment_id=external_id,
            reason=f"Gateway {event_type}",
        )
        return WebhookResult(
            status=WebhookEventStatus.PROCESSED,
            detail=f"refund_{application.action}",
            booking_id=booking.id,  # type: ignore[arg-type]
            refund_id=application.refund.id,  # type: ignore[arg-type]
            refund_changed=application.changed,
        )

    @staticmethod
    def _parse_reference(reference: str) -> tuple[UUID | None, UUID | None]:
        if not reference:
            return None, None
        if reference.startswith(PURCHASE_REFERENCE_PREFIX):
            return None, _parse_uuid(reference[len(PURCHASE_REFERENCE_PREFIX) :])
        if reference.startswith(BOOKING_REFERENCE_PREFIX):
            reference = reference[len(BOOKING_REFERENCE_PREFIX) :]
        return _parse_uuid(reference), None

    def _confirm_booking(
        self, booking: Booking, external_id: str | None, payment: Payment | None
    ) -> WebhookResult:
        booking_id: UUID = booking.id  # type: ignore[assignment]
        if booking.financial_status != FinancialStatus.PENDING.value:
            return WebhookResult(
                status=WebhookEventStatus.PROCESSED, detail="already_paid", booking_id=booking_id
            )

        if payment is not None:
            if external_id and not payment.external_id:
                payment.external_id = external_id  # type: ignore[assignment]
            self.payment_repo.set_status(payment, PaymentStatus.APPROVED)

        if booking.status == BookingStatus.CANCELLED.value:
            # Money arrived for a released slot; keep it cancelled and queue a refund review.
            self.booking_repo.set_financial_status(booking, FinancialStatus.PAID)
            refund = self.refund_repo.get_by_booking_id(booking_id)
            if refund is None:
                refund = self.refund_repo.create(
                    booking_id=booking_id,
                    user_id=booking.user_id,
                    expected_amount=int(booking.net_amount or 0),
                    # credits went back when the unpaid booking was cancelled
                    credits_returned=int(booking.credits_used or 0),
                    total_refunded=int(booking.credits_used or 0),
                    is_partial=True,
                    gateway=RefundGateway.ASAAS.value,
                    external_payment_id=external_id,
                    status=RefundStatus.PENDING.value,
                    needs_review=True,
                    review_reason="Payment confirmed after cancellation",
                )
            logger.warning("Payment confirmed for cancelled booking: booking_id=%s", booking_id)
            return WebhookResult(
                status=WebhookEventStatus.PROCESSED,
                detail="paid_after_cancellation",
                booking_id=booking_id,
                refund_id=refund.id,  # type: ignore[arg-type]
            )

        booking.status = BookingStatus.CONFIRMED.value  # type: ignore[assignment]
        booking.expires_at = None  # type: ignore[assignment]
        self.booking_repo.set_financial_status(booking, FinancialStatus.PAID)
        logger.info("Booking paid: booking_id=%s payment_id=%s", booking_id, external_id)
        return WebhookResult(
            status=WebhookEventStatus.PROCESSED, detail="paid", booking_id=booking_id
        )

    def _confirm_credit_purchase(
        self, credit: Credit, external_id: str | None, payment: Payment | None
    ) -> WebhookResult:
        credit_id: UUID = credit.id  # type: ignore[assignment]
        if credit.status != CreditStatus.PENDING.value:
            logger.warning(
                "Confirmation for credit purchase in status %s: credit_id=%s",
                credit.status,
                credit_id,
            )
            return WebhookResult(
                status=WebhookEventStatus.PROCESSED,
                detail=f"credit_{credit.status}",
                credit_id=credit_id,
            )

        if payment is not None:
            if external_id and not payment.external_id:
                payment.external_id = external_id  # type: ignore[assignment]
            self.payment_repo.set_status(payment, PaymentStatus.APPROVED)
        credit.status = CreditStatus.CONFIRMED.value  # type: ignore[assignment]
        self.db.flush()
        logger.info("Credit purchase paid: credit_id=%s payment_id=%s", credit_id, external_id)
        return WebhookResult(
            status=WebhookEventStatus.PROCESSED, detail="paid", credit_id=credit_id
        )
