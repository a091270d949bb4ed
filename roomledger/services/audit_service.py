"""Audit trail for ledger operations.

Entries are written after the business transaction commits, in their own
session. A failed audit write is logged and never affects the operation
that triggered it.
"""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roomledger.core.database import session_scope
from roomledger.repositories.audit_log_repository import AuditLogRepository

logger = logging.getLogger(__name__)


class AuditService:
    """Service for recording audit trail entries."""

    def __init__(self, db: Session):
        self.repo = AuditLogRepository(db)

    def log_event(
        self,
        resource_type: str,
        resource_id: str,
        action: str,
        changes: dict[str, Any] | None = None,
        actor_type: str = "system",
        actor_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.repo.create(
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            changes=changes or {},
            actor_type=actor_type,
            actor_id=actor_id,
            metadata=metadata,
        )

    def log_status_change(
        self,
        resource_type: str,
        resource_id: str,
        old_status: str,
        new_status: str,
        actor_type: str = "system",
        actor_id: str | None = None,
    ) -> None:
        """Log a status change event."""
        if old_status == new_status:
            return
        self.log_event(
            resource_type=resource_type,
            resource_id=resource_id,
            action="status_changed",
            changes={"status": {"old": old_status, "new": new_status}},
            actor_type=actor_type,
            actor_id=actor_id,
        )


def record_audit_event(
    resource_type: str,
    resource_id: str,
    action: str,
    changes: dict[str, Any] | None = None,
    actor_type: str = "system",
    actor_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> bool:
    """Best-effort audit write in a fresh session. Returns False when it failed."""
    try:
        with session_scope() as db:
            AuditService(db).log_event(
                resource_type,
                resource_id,
                action,
                changes=changes,
                actor_type=actor_type,
                actor_id=actor_id,
                metadata=metadata,
            )
    except SQLAlchemyError:
        logger.exception(
            "Failed to record audit event: resource_type=%s resource_id=%s action=%s",
            resource_type,
            resource_id,
            action,
        )
        return False
    return True
