"""AuditLog model for the best-effort ledger audit trail."""

from sqlalchemy import JSON, Column, DateTime, String, func

from roomledger.core.database import Base
from roomledger.models.shared import UUIDType, generate_uuid


class AuditLog(Base):
    """AuditLog model - records ledger state changes after they commit."""

    __tablename__ = "audit_logs"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    resource_type = Column(String(50), nullable=False, index=True)
    resource_id = Column(String(255), nullable=False, index=True)
    action = Column(String(50), nullable=False, index=True)
    changes = Column(JSON, nullable=False, default=dict)
    actor_type = Column(String(50), nullable=False)
    actor_id = Column(String(255), nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
