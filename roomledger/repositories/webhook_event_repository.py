"""WebhookEvent repository for data access."""

from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from roomledger.models.webhook_event import WebhookEvent, WebhookEventStatus


class WebhookEventRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_key(self, event_key: str) -> WebhookEvent | None:
        return self.db.query(WebhookEvent).filter(WebhookEvent.event_key == event_key).first()

    def create(
        self,
        event_key: str,
        event_type: str,
        external_payment_id: str | None,
        payload: dict[str, Any] | None,
    ) -> WebhookEvent:
        event = WebhookEvent(
            event_key=event_key,
            event_type=event_type,
            external_payment_id=external_payment_id,
            payload=payload,
            status=WebhookEventStatus.PROCESSING.value,
        )
        self.db.add(event)
        self.db.flush()
        return event

    def mark(
        self,
        event: WebhookEvent,
        status: WebhookEventStatus,
        processed_at: datetime,
        detail: str | None = None,
    ) -> WebhookEvent:
        event.status = status.value  # type: ignore[assignment]
        event.processed_at = processed_at  # type: ignore[assignment]
        event.detail = detail  # type: ignore[assignment]
        self.db.flush()
        return event
