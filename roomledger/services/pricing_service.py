"""Price quotes: override gate, then coupon, then credits."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from roomledger.core.config import LedgerConfig
from roomledger.core.errors import CouponErrorCode, OverrideErrorCode, OverrideRejectedError
from roomledger.models.booking import PricingMode
from roomledger.models.coupon import DiscountType
from roomledger.models.coupon_usage import CouponUsageContext
from roomledger.services.coupon_registry import CouponConfig, CouponRegistry
from roomledger.services.coupon_usage_service import CouponUsageCheck, CouponUsageLedger
from roomledger.services.credit_service import CreditService
from roomledger.services.discount import apply_discount
from roomledger.services.price_audit import PriceAuditSnapshot
from roomledger.services.price_override import (
    OverridePrice,
    is_override_code,
    parse_override_code,
    validate_override_access,
)

logger = logging.getLogger(__name__)


@dataclass
class PriceQuote:
    snapshot: PriceAuditSnapshot
    pricing_mode: PricingMode
    coupon: CouponConfig | None = None
    coupon_applied: bool = False
    coupon_check: CouponUsageCheck | None = None
    override_final_cents: int | None = None
    override_reason: str | None = None

    @property
    def coupon_error(self) -> CouponErrorCode | None:
        if self.coupon_check is None or self.coupon_check.can_use:
            return None
        return self.coupon_check.code


class PricingService:
    """Computes what a customer owes. Reads only; nothing is consumed here."""

    def __init__(self, db: Session, config: LedgerConfig, registry: CouponRegistry | None = None):
        self.db = db
        self.config = config
        self.registry = registry or CouponRegistry.for_session(db, config)
        self.ledger = CouponUsageLedger(db, self.registry)
        self.credit_service = CreditService(db)

    def quote(
        self,
        user_id: str,
        gross_amount: int,
        coupon_code: str | None = None,
        use_credits: bool = False,
        context: CouponUsageContext = CouponUsageContext.BOOKING,
        user_email: str | None = None,
        role: str | None = None,
        override: OverridePrice | None = None,
        request_id: str = "",
        booking_id: UUID | None = None,
        credit_id: UUID | None = None,
    ) -> PriceQuote:
        """Quote ``gross_amount`` for ``user_id``.

        An unusable coupon is reported on the quote, never raised. ``booking_id``
        and ``credit_id`` name the row being finalized, so a retry is not
        rejected for the coupon it already consumed.

        Raises:
            OverrideRejectedError: An override was requested and refused.
        """
        if override is None and is_override_code(coupon_code):
            override = parse_override_code(coupon_code)
            coupon_code = None

        if override is not None:
            return self._override_quote(gross_amount, override, user_email, role, request_id)

        coupon: CouponConfig | None = None
        check: CouponUsageCheck | None = None
        if coupon_code and coupon_code.strip():
            check = self.ledger.check_coupon_usage(
                user_id,
                coupon_code,
                context,
                user_email,
                booking_id=booking_id,
                credit_id=credit_id,
            )
            if check.can_use:
                coupon = check.coupon
            else:
                logger.info(
                    "Coupon not applied: request_id=%s user_id=%s code=%s error=%s",
                    request_id,
                    user_id,
                    coupon_code,
                    check.code.value if check.code else None,
                )

        discount = apply_discount(gross_amount, coupon, self.config.min_payment_amount_cents)
        net_amount = discount.final_amount
        credits_used = self._credits_to_use(user_id, net_amount) if use_credits else 0

        snapshot = PriceAuditSnapshot.from_discount(
            gross_amount, discount, coupon=coupon, credits_used=credits_used
        )
        return PriceQuote(
            snapshot=snapshot,
            pricing_mode=PricingMode.NORMAL,
            coupon=coupon if discount.coupon_applied else None,
            coupon_applied=discount.coupon_applied,
            coupon_check=check,
        )

    def _override_quote(
        self,
        gross_amount: int,
        override: OverridePrice,
        user_email: str | None,
        role: str | None,
        request_id: str,
    ) -> PriceQuote:
        validation = validate_override_access(user_email, role, override, request_id, self.config)
        if not validation.allowed:
            raise OverrideRejectedError(
                validation.code or OverrideErrorCode.OVERRIDE_NOT_ALLOWED, validation.reason or ""
            )

        final_cents = validation.final_cents or 0
        discount = apply_discount(
            gross_amount,
            CouponConfig(
                code="OVERRIDE",
                discount_type=DiscountType.PRICE_OVERRIDE,
                value=final_cents,
                description=override.reason,
            ),
        )
        # Credits and coupons are ignored. A price above gross is recorded as the gross;
        # the list price stays in the snapshot metadata.
        snapshot = PriceAuditSnapshot.build(
            gross_amount=discount.final_amount + discount.discount_amount,
            discount_amount=discount.discount_amount,
            credits_used=0,
            coupon_snapshot={
                "discount_type": DiscountType.PRICE_OVERRIDE.value,
                "value": final_cents,
                "list_price_cents": gross_amount,
            },
        )
        logger.info(
            "Override quote: request_id=%s gross=%d final=%d", request_id, gross_amount, final_cents
        )
        return PriceQuote(
            snapshot=snapshot,
            pricing_mode=PricingMode.OVERRIDE,
            override_final_cents=final_cents,
            override_reason=override.reason.strip(),
        )

    def _credits_to_use(self, user_id: str, net_amount: int) -> int:
        """Use as much balance as possible without leaving a cash remainder below the minimum."""
        balance = self.credit_service.get_balance(user_id)
        credits = min(balance, net_amount)
        remainder = net_amount - credits
        minimum = self.config.min_payment_amount_cents
        if 0 < remainder < minimum <= net_amount:
            credits = net_amount - minimum
        return credits
