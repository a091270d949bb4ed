"""Price quote endpoint."""

from uuid import uuid4

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from roomledger.core.auth import SessionIdentity, get_session_identity
from roomledger.core.config import settings
from roomledger.core.database import get_db
from roomledger.core.errors import OverrideErrorCode, OverrideRejectedError
from roomledger.schemas.pricing import PriceQuoteRequest, PriceQuoteResponse
from roomledger.services.price_override import OverridePrice
from roomledger.services.pricing_service import PricingService

router = APIRouter()


@router.post(
    "/quote",
    response_model=PriceQuoteResponse,
    summary="Quote a price",
    responses={
        400: {"description": "Malformed override"},
        401: {"description": "Authentication required"},
        403: {"description": "Override not allowed for this account"},
    },
)
async def quote_price(
    data: PriceQuoteRequest,
    db: Session = Depends(get_db),
    identity: SessionIdentity = Depends(get_session_identity),
    x_request_id: str | None = Header(default=None, alias="X-Request-ID"),
) -> PriceQuoteResponse:
    """Quote what the caller would pay. Nothing is consumed."""
    override = (
        OverridePrice(final_cents=data.override.final_cents, reason=data.override.reason)
        if data.override
        else None
    )
    service = PricingService(db, settings.ledger_config())
    try:
        quote = service.quote(
            identity.user_id,
            data.gross_amount,
            coupon_code=data.coupon_code,
            use_credits=data.use_credits,
            context=data.context,
            user_email=identity.email,
            role=identity.role,
            override=override,
            request_id=x_request_id or uuid4().hex,
        )
    except OverrideRejectedError as exc:
        status_code = 403 if exc.code == OverrideErrorCode.OVERRIDE_NOT_ALLOWED else 400
        raise HTTPException(
            status_code=status_code, detail={"code": exc.code.value, "reason": exc.reason}
        ) from None

    snapshot = quote.snapshot
    return PriceQuoteResponse(
        gross_amount=snapshot.gross_amount,
        discount_amount=snapshot.discount_amount,
        net_amount=snapshot.net_amount,
        credits_used=snapshot.credits_used,
        amount_paid=snapshot.amount_paid,
        coupon_code=quote.coupon.code if quote.coupon else None,
        coupon_applied=quote.coupon_applied,
        coupon_error=quote.coupon_error.value if quote.coupon_error else None,
        pricing_mode=quote.pricing_mode.value,
        override_reason=quote.override_reason,
    )
