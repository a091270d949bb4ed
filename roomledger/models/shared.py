"""Shared model utilities used across all models."""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Column, Integer, String, TypeDecorator
from sqlalchemy.engine import Dialect


class UUIDType(TypeDecorator[uuid.UUID]):
    """Platform-independent UUID type.

    Uses String(36) for SQLite, native UUID for PostgreSQL.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(value))

    def process_result_value(self, value: Any, dialect: Dialect) -> uuid.UUID | None:
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


def generate_uuid() -> uuid.UUID:
    """Generate a new UUID."""
    return uuid.uuid4()


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class PriceAuditMixin:
    """Price audit snapshot columns shared by bookings and credit purchases.

    Written once, in the transaction that creates the row. Amounts are cents.
    """

    gross_amount = Column(Integer, nullable=True)
    discount_amount = Column(Integer, nullable=True)
    net_amount = Column(Integer, nullable=True)
    coupon_code = Column(String(64), nullable=True, index=True)
    coupon_snapshot = Column(JSON, nullable=True)
    credits_used = Column(Integer, nullable=False, default=0)
    amount_paid = Column(Integer, nullable=False, default=0)
