"""Coupon API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from roomledger.core.auth import SessionIdentity, get_session_identity, require_admin
from roomledger.core.config import settings
from roomledger.core.database import get_db
from roomledger.models.coupon import Coupon
from roomledger.repositories.coupon_repository import CouponRepository, normalize_code
from roomledger.schemas.coupon import (
    CouponCreate,
    CouponResponse,
    CouponUpdate,
    CouponValidateRequest,
    CouponValidateResponse,
)
from roomledger.services.coupon_registry import CouponRegistry
from roomledger.services.coupon_usage_service import CouponUsageLedger
from roomledger.services.discount import apply_discount

router = APIRouter()


@router.post(
    "/validate",
    response_model=CouponValidateResponse,
    summary="Validate coupon",
    responses={401: {"description": "Authentication required"}},
)
async def validate_coupon(
    data: CouponValidateRequest,
    db: Session = Depends(get_db),
    identity: SessionIdentity = Depends(get_session_identity),
) -> CouponValidateResponse:
    """Check whether the caller may use a coupon and preview its discount."""
    config = settings.ledger_config()
    ledger = CouponUsageLedger(db, CouponRegistry.for_session(db, config))
    check = ledger.check_coupon_usage(identity.user_id, data.code, data.context, identity.email)
    code = normalize_code(data.code)
    if not check.can_use or check.coupon is None:
        return CouponValidateResponse(
            valid=False,
            code=code,
            error_code=check.code.value if check.code else None,
            reason=check.reason,
        )

    discount = apply_discount(data.amount, check.coupon, config.min_payment_amount_cents)
    return CouponValidateResponse(
        valid=True,
        code=code,
        discount_type=check.coupon.discount_type.value,
        final_amount=discount.final_amount,
        discount_amount=discount.discount_amount,
    )


@router.post(
    "/",
    response_model=CouponResponse,
    status_code=201,
    summary="Create coupon",
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Admin access required"},
        409: {"description": "Coupon with this code already exists"},
        422: {"description": "Validation error"},
    },
)
async def create_coupon(
    data: CouponCreate,
    db: Session = Depends(get_db),
    _admin: SessionIdentity = Depends(require_admin),
) -> Coupon:
    """Create a new coupon."""
    repo = CouponRepository(db)
    if repo.get_by_code(data.code):
        raise HTTPException(status_code=409, detail="Coupon with this code already exists")
    return repo.create(data)


@router.get(
    "/",
    response_model=list[CouponResponse],
    summary="List coupons",
    responses={401: {"description": "Authentication required"}},
)
async def list_coupons(
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    is_active: bool | None = None,
    db: Session = Depends(get_db),
    _admin: SessionIdentity = Depends(require_admin),
) -> list[Coupon]:
    """List coupons with optional active filter."""
    repo = CouponRepository(db)
    response.headers["X-Total-Count"] = str(repo.count())
    return repo.get_all(skip=skip, limit=limit, is_active=is_active)


@router.get(
    "/{code}",
    response_model=CouponResponse,
    summary="Get coupon",
    responses={
        401: {"description": "Authentication required"},
        404: {"description": "Coupon not found"},
    },
)
async def get_coupon(
    code: str,
    db: Session = Depends(get_db),
    _admin: SessionIdentity = Depends(require_admin),
) -> Coupon:
    """Get a coupon by code."""
    coupon = CouponRepository(db).get_by_code(code)
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return coupon


@router.put(
    "/{code}",
    response_model=CouponResponse,
    summary="Update coupon",
    responses={
        401: {"description": "Authentication required"},
        404: {"description": "Coupon not found"},
        422: {"description": "Validation error"},
    },
)
async def update_coupon(
    code: str,
    data: CouponUpdate,
    db: Session = Depends(get_db),
    _admin: SessionIdentity = Depends(require_admin),
) -> Coupon:
    """Update a coupon."""
    coupon = CouponRepository(db).update(code, data)
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return coupon


@router.delete(
    "/{code}",
    status_code=204,
    summary="Delete coupon",
    responses={
        401: {"description": "Authentication required"},
        404: {"description": "Coupon not found"},
    },
)
async def delete_coupon(
    code: str,
    db: Session = Depends(get_db),
    _admin: SessionIdentity = Depends(require_admin),
) -> None:
    """Delete a coupon."""
    if not CouponRepository(db).delete(code):
        raise HTTPException(status_code=404, detail="Coupon not found")
