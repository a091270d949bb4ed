import logging
from typing import Any
from uuid import UUID

from arq import cron

from roomledger.core.config import settings
from roomledger.core.database import SessionLocal
from roomledger.services.audit_service import record_audit_event
from roomledger.services.booking_ledger_service import BookingLedgerService
from roomledger.services.notification_service import NotificationService
from roomledger.tasks import redis_settings

logger = logging.getLogger(__name__)


async def send_refund_notification(ctx: dict[str, Any], booking_id: str) -> bool:
    """Background task: tell the customer about their refund."""
    db = SessionLocal()
    try:
        return NotificationService(db).send_refund_notification(UUID(booking_id))
    finally:
        db.close()


async def record_audit_event_task(
    ctx: dict[str, Any],
    resource_type: str,
    resource_id: str,
    action: str,
    changes: dict[str, Any] | None = None,
    actor_type: str = "system",
    actor_id: str | None = None,
) -> bool:
    """Background task: write an audit trail entry in its own session."""
    return record_audit_event(
        resource_type,
        resource_id,
        action,
        changes=changes,
        actor_type=actor_type,
        actor_id=actor_id,
    )


async def expire_pending_bookings_task(ctx: dict[str, Any]) -> int:
    """Background task: release unpaid bookings whose payment window has passed.

    Coupons and credits consumed by an expired booking are handed back.
    Runs every 5 minutes.
    """
    db = SessionLocal()
    try:
        service = BookingLedgerService(
            db,
            settings.ledger_config(),
            pending_ttl_minutes=settings.PENDING_BOOKING_TTL_MINUTES,
        )
        count = service.expire_pending_bookings()
        if count > 0:
            logger.info("Expired %d pending bookings", count)
        return count
    finally:
        db.close()


class WorkerSettings:
    functions = [
        send_refund_notification,
        record_audit_event_task,
        expire_pending_bookings_task,
    ]
    cron_jobs = [
        cron(
            expire_pending_bookings_task,
            minute={0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55},
        ),
    ]
    redis_settings = redis_settings
