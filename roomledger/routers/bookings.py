"""Booking cancellation endpoint."""

import logging
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from roomledger.core.auth import SessionIdentity, get_session_identity
from roomledger.core.config import settings
from roomledger.core.database import get_db
from roomledger.repositories.booking_repository import BookingRepository
from roomledger.schemas.booking import BookingCancelRequest, BookingCancelResponse
from roomledger.services.booking_ledger_service import BookingLedgerService
from roomledger.tasks import enqueue_audit_event, enqueue_refund_notification

logger = logging.getLogger(__name__)

router = APIRouter()


async def _enqueue_cancellation_side_effects(
    booking_id: str, actor_id: str, changes: dict[str, object], notify_refund: bool
) -> None:
    """Enqueue audit and notification jobs for a committed cancellation."""
    try:
        await enqueue_audit_event(
            "booking", booking_id, "cancelled", changes, actor_type="user", actor_id=actor_id
        )
    except Exception:
        logger.exception("Failed to enqueue audit event for booking %s", booking_id)
    if notify_refund:
        try:
            await enqueue_refund_notification(booking_id)
        except Exception:
            logger.exception("Failed to enqueue refund notification for booking %s", booking_id)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingCancelResponse,
    summary="Cancel booking",
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Booking belongs to another user"},
        404: {"description": "Booking not found"},
    },
)
async def cancel_booking(
    booking_id: UUID,
    background_tasks: BackgroundTasks,
    data: BookingCancelRequest | None = None,
    db: Session = Depends(get_db),
    identity: SessionIdentity = Depends(get_session_identity),
) -> BookingCancelResponse:
    """Cancel a booking.

    Unpaid bookings get their coupon and credits back. Paid bookings keep the
    coupon burned and open a refund record for the amount collected.
    """
    booking = BookingRepository(db).get_by_id(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking.user_id != identity.user_id and not identity.is_admin:
        raise HTTPException(status_code=403, detail="Booking belongs to another user")

    service = BookingLedgerService(
        db, settings.ledger_config(), pending_ttl_minutes=settings.PENDING_BOOKING_TTL_MINUTES
    )
    result = service.cancel_booking(
        booking_id, reason=data.reason if data else None, actor_id=identity.user_id
    )
    if result is None:
        raise HTTPException(status_code=404, detail="Booking not found")

    if not result.already_cancelled:
        background_tasks.add_task(
            _enqueue_cancellation_side_effects,
            str(booking_id),
            identity.user_id,
            {
                "financial_status": result.booking.financial_status,
                "coupon_restored": result.coupon.restored,
                "credits_restored": result.credits_restored,
            },
            result.refund is not None,
        )

    return BookingCancelResponse(
        booking_id=booking_id,
        status=str(result.booking.status),
        financial_status=str(result.booking.financial_status),
        cancelled_at=result.booking.cancelled_at,  # type: ignore[arg-type]
        coupon_restored=result.coupon.restored,
        coupon_code=result.coupon.coupon_code,
        credits_restored=result.credits_restored,
        refund_id=result.refund.id if result.refund else None,  # type: ignore[arg-type]
        already_cancelled=result.already_cancelled,
    )
