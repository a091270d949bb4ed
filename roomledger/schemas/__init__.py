from roomledger.schemas.booking import BookingCancelRequest, BookingCancelResponse
from roomledger.schemas.coupon import (
    CouponCreate,
    CouponResponse,
    CouponUpdate,
    CouponValidateRequest,
    CouponValidateResponse,
)
from roomledger.schemas.pricing import OverrideRequest, PriceQuoteRequest, PriceQuoteResponse
from roomledger.schemas.refund import RefundResponse
from roomledger.schemas.webhook import AsaasPayment, AsaasWebhookPayload, WebhookAckResponse

__all__ = [
    "AsaasPayment",
    "AsaasWebhookPayload",
    "BookingCancelRequest",
    "BookingCancelResponse",
    "CouponCreate",
    "CouponResponse",
    "CouponUpdate",
    "CouponValidateRequest",
    "CouponValidateResponse",
    "OverrideRequest",
    "PriceQuoteRequest",
    "PriceQuoteResponse",
    "RefundResponse",
    "WebhookAckResponse",
]
