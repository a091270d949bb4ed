"""Refund review endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from roomledger.core.auth import SessionIdentity, get_session_identity, require_admin
from roomledger.core.database import get_db
from roomledger.models.refund import Refund
from roomledger.repositories.refund_repository import RefundRepository
from roomledger.schemas.refund import RefundResponse

router = APIRouter()


@router.get(
    "/pending",
    response_model=list[RefundResponse],
    summary="List refunds needing review",
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Admin access required"},
    },
)
async def list_pending_refunds(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    _admin: SessionIdentity = Depends(require_admin),
) -> list[Refund]:
    """Refunds that are pending, partial, or flagged by a conflicting notification."""
    return RefundRepository(db).get_needing_review(skip=skip, limit=limit)


@router.get(
    "/{booking_id}",
    response_model=RefundResponse,
    summary="Get refund for a booking",
    responses={
        401: {"description": "Authentication required"},
        404: {"description": "Refund not found"},
    },
)
async def get_refund(
    booking_id: UUID,
    db: Session = Depends(get_db),
    identity: SessionIdentity = Depends(get_session_identity),
) -> Refund:
    refund = RefundRepository(db).get_by_booking_id(booking_id)
    if not refund or (refund.user_id != identity.user_id and not identity.is_admin):
        raise HTTPException(status_code=404, detail="Refund not found")
    return refund
