from roomledger.repositories.audit_log_repository import AuditLogRepository
from roomledger.repositories.booking_repository import BookingRepository
from roomledger.repositories.coupon_repository import CouponRepository
from roomledger.repositories.coupon_usage_repository import CouponUsageRepository
from roomledger.repositories.credit_repository import CreditRepository
from roomledger.repositories.payment_repository import PaymentRepository
from roomledger.repositories.refund_repository import RefundRepository
from roomledger.repositories.webhook_event_repository import WebhookEventRepository

__all__ = [
    "AuditLogRepository",
    "BookingRepository",
    "CouponRepository",
    "CouponUsageRepository",
    "CreditRepository",
    "PaymentRepository",
    "RefundRepository",
    "WebhookEventRepository",
]
