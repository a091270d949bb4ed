from roomledger.models.audit_log import AuditLog
from roomledger.models.booking import (
    Booking,
    BookingStatus,
    FinancialStatus,
    PaymentMethod,
    PricingMode,
)
from roomledger.models.coupon import Coupon, DiscountType
from roomledger.models.coupon_usage import CouponUsage, CouponUsageContext, CouponUsageStatus
from roomledger.models.credit import Credit, CreditSource, CreditStatus
from roomledger.models.payment import Payment, PaymentStatus
from roomledger.models.refund import Refund, RefundGateway, RefundStatus
from roomledger.models.webhook_event import WebhookEvent, WebhookEventStatus

__all__ = [
    "AuditLog",
    "Booking",
    "BookingStatus",
    "Coupon",
    "CouponUsage",
    "CouponUsageContext",
    "CouponUsageStatus",
    "Credit",
    "CreditSource",
    "CreditStatus",
    "DiscountType",
    "FinancialStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "PricingMode",
    "Refund",
    "RefundGateway",
    "RefundStatus",
    "WebhookEvent",
    "WebhookEventStatus",
]
