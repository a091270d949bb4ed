"""WebhookEvent model: deduplication log of gateway notifications."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, String, Text, func

from roomledger.core.database import Base
from roomledger.models.shared import UUIDType, generate_uuid


class WebhookEventStatus(str, Enum):
    PROCESSING = "processing"
    PROCESSED = "processed"
    IGNORED_NOT_FOUND = "ignored_not_found"
    IGNORED_NO_REFERENCE = "ignored_no_reference"
    FAILED = "failed"


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    event_key = Column(String(255), nullable=False, unique=True)
    event_type = Column(String(100), nullable=False, index=True)
    external_payment_id = Column(String(255), nullable=True, index=True)
    status = Column(String(30), nullable=False, default=WebhookEventStatus.PROCESSING.value)
    detail = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    processed_at = Column(DateTime(timezone=True), nullable=True)
