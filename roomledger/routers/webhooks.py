"""Payment gateway webhook endpoint.

Once the access token checks out the gateway always gets a 200, whatever the
outcome, so it does not retry. Anything that needs a human lands in the
webhook event log or on a refund flagged for review.
"""

import hmac
import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from roomledger.core.config import settings
from roomledger.core.database import get_db, session_scope
from roomledger.models.shared import utc_now
from roomledger.models.webhook_event import WebhookEventStatus
from roomledger.repositories.webhook_event_repository import WebhookEventRepository
from roomledger.schemas.webhook import AsaasWebhookPayload, WebhookAckResponse
from roomledger.services.refund_reconciliation import (
    RefundReconciliationService,
    WebhookResult,
    webhook_event_key,
)
from roomledger.tasks import enqueue_audit_event, enqueue_refund_notification

logger = logging.getLogger(__name__)

router = APIRouter()


def _verify_token(token: str | None) -> bool:
    expected = settings.ASAAS_WEBHOOK_TOKEN
    if not expected or not token:
        return False
    return hmac.compare_digest(token.encode(), expected.encode())


def _record_failed_event(body: dict[str, Any], detail: str) -> None:
    """Keep the payload of a notification that could not be processed."""
    payment = body.get("payment") or {}
    try:
        with session_scope() as db:
            repo = WebhookEventRepository(db)
            event_key = webhook_event_key(body)
            event = repo.get_by_key(event_key) or repo.create(
                event_key, str(body.get("event") or "UNKNOWN"), payment.get("id"), body
            )
            repo.mark(event, WebhookEventStatus.FAILED, utc_now(), detail)
    except SQLAlchemyError:
        logger.exception("Failed to record failed webhook event")


def _process(
    service: RefundReconciliationService, db: Session, body: dict[str, Any]
) -> WebhookResult:
    result = service.process_webhook(body)
    db.commit()
    return result


def _fail(db: Session, body: dict[str, Any]) -> WebhookAckResponse:
    db.rollback()
    logger.exception("Webhook processing failed: event_key=%s", webhook_event_key(body))
    _record_failed_event(body, "processing_error")
    return WebhookAckResponse(status=WebhookEventStatus.FAILED.value)


async def _enqueue_refund_side_effects(booking_id: str, changes: dict[str, Any]) -> None:
    try:
        await enqueue_audit_event("refund", booking_id, "reconciled", changes, actor_type="gateway")
    except Exception:
        logger.exception("Failed to enqueue audit event for refund of booking %s", booking_id)
    try:
        await enqueue_refund_notification(booking_id)
    except Exception:
        logger.exception("Failed to enqueue refund notification for booking %s", booking_id)


@router.post(
    "/asaas",
    response_model=WebhookAckResponse,
    summary="Asaas payment webhook",
    responses={401: {"description": "Invalid access token"}},
)
async def handle_asaas_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    access_token: str | None = Header(default=None, alias="asaas-access-token"),
    db: Session = Depends(get_db),
) -> WebhookAckResponse:
    """Reconcile a payment confirmation, refund or chargeback notification."""
    if not _verify_token(access_token):
        logger.warning("Webhook rejected: invalid access token")
        raise HTTPException(status_code=401, detail="Invalid access token")

    try:
        raw = await request.json()
        payload = AsaasWebhookPayload.model_validate(raw)
    except (ValueError, ValidationError):
        logger.warning("Webhook ignored: malformed payload")
        return WebhookAckResponse(status="invalid_payload")

    body = payload.model_dump(by_alias=True)
    service = RefundReconciliationService(db, settings.ledger_config())
    try:
        result = _process(service, db, body)
    except IntegrityError:
        # A concurrent delivery committed the same event or a refund for the same
        # booking first. The retry sees those rows and deduplicates, upgrades or flags.
        db.rollback()
        logger.warning("Webhook conflict, retrying: event_key=%s", webhook_event_key(body))
        try:
            result = _process(service, db, body)
        except Exception:
            return _fail(db, body)
    except Exception:
        return _fail(db, body)

    if result.refund_changed and result.booking_id is not None:
        background_tasks.add_task(
            _enqueue_refund_side_effects,
            str(result.booking_id),
            {"event": body.get("event"), "detail": result.detail},
        )

    return WebhookAckResponse(
        status="duplicate" if result.duplicate else result.status.value,
        detail=result.detail,
    )
