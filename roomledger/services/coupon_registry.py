"""Coupon registry: resolves coupon codes through a chain of sources.

The persisted store is authoritative. The built-in fallback table is only
consulted when the store does not know the code or cannot be reached.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roomledger.core.config import LedgerConfig
from roomledger.models.coupon import Coupon, DiscountType
from roomledger.models.shared import as_utc, utc_now
from roomledger.repositories.coupon_repository import CouponRepository, normalize_code

logger = logging.getLogger(__name__)

SOURCE_DATABASE = "database"
SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True)
class CouponConfig:
    """A resolved coupon. Immutable for the lifetime of a transaction."""

    code: str
    discount_type: DiscountType
    value: int
    description: str
    single_use_per_user: bool = False
    is_dev_coupon: bool = False
    min_amount_cents: int | None = None
    source: str = SOURCE_FALLBACK

    def to_snapshot(self) -> dict[str, object]:
        """JSON-safe copy kept next to the price audit snapshot."""
        return {
            "code": self.code,
            "discount_type": self.discount_type.value,
            "value": self.value,
            "description": self.description,
            "single_use_per_user": self.single_use_per_user,
            "is_dev_coupon": self.is_dev_coupon,
            "min_amount_cents": self.min_amount_cents,
            "source": self.source,
        }


@dataclass(frozen=True)
class DevCouponAccess:
    allowed: bool
    reason: str | None = None


class CouponNotFound(Exception):
    """Raised by a source that does not know a code, so the next one is tried."""


class CouponSource(Protocol):
    name: str

    def lookup(self, code: str) -> CouponConfig | None:
        """Return the coupon, None when known but unusable, or raise CouponNotFound."""
        ...


FALLBACK_COUPONS: dict[str, CouponConfig] = {
    "ARTHEMI10": CouponConfig(
        code="ARTHEMI10",
        discount_type=DiscountType.PERCENT,
        value=10,
        description="10% de desconto",
    ),
    "PRIMEIRACOMPRA": CouponConfig(
        code="PRIMEIRACOMPRA",
        discount_type=DiscountType.PERCENT,
        value=15,
        description="15% primeira compra",
        single_use_per_user=True,
    ),
    "PRIMEIRACOMPRA10": CouponConfig(
        code="PRIMEIRACOMPRA10",
        discount_type=DiscountType.PERCENT,
        value=10,
        description="10% primeira compra",
        single_use_per_user=True,
    ),
}


class FallbackCouponSource:
    """Fixed built-in table of legacy codes."""

    name = SOURCE_FALLBACK

    def __init__(self, coupons: dict[str, CouponConfig] | None = None):
        self.coupons = FALLBACK_COUPONS if coupons is None else coupons

    def lookup(self, code: str) -> CouponConfig | None:
        coupon = self.coupons.get(code)
        if coupon is None:
            raise CouponNotFound(code)
        return coupon


class DatabaseCouponSource:
    """Persisted coupon store with activation window and global usage cap."""

    name = SOURCE_DATABASE

    def __init__(self, db: Session):
        self.repo = CouponRepository(db)

    def lookup(self, code: str) -> CouponConfig | None:
        coupon = self.repo.get_by_code(code)
        if coupon is None:
            raise CouponNotFound(code)
        if not self._is_usable(coupon, utc_now()):
            return None
        return CouponConfig(
            code=str(coupon.code),
            discount_type=DiscountType(coupon.discount_type),
            value=int(coupon.value),  # type: ignore[arg-type]
            description=str(coupon.description or ""),
            single_use_per_user=bool(coupon.single_use_per_user),
            is_dev_coupon=bool(coupon.is_dev_coupon),
            min_amount_cents=coupon.min_amount_cents,  # type: ignore[arg-type]
            source=SOURCE_DATABASE,
        )

    @staticmethod
    def _is_usable(coupon: Coupon, now: datetime) -> bool:
        if not coupon.is_active:
            return False
        valid_from = as_utc(coupon.valid_from)  # type: ignore[arg-type]
        if valid_from is not None and now < valid_from:
            return False
        valid_until = as_utc(coupon.valid_until)  # type: ignore[arg-type]
        if valid_until is not None and now > valid_until:
            return False
        return not (coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses)


class CouponRegistry:
    """Resolves coupon codes against an ordered chain of sources."""

    def __init__(self, sources: Sequence[CouponSource], config: LedgerConfig):
        self.sources = list(sources)
        self.config = config

    @classmethod
    def for_session(cls, db: Session, config: LedgerConfig) -> "CouponRegistry":
        return cls([DatabaseCouponSource(db), FallbackCouponSource()], config)

    def get_coupon_info(self, code: str | None) -> CouponConfig | None:
        """Resolve a coupon code. Unknown, inactive, expired and exhausted codes give None."""
        if not code or not code.strip():
            return None
        normalized = normalize_code(code)
        coupon = self._resolve(normalized)
        if coupon is not None and not self.config.coupons_enabled and not coupon.is_dev_coupon:
            logger.info("Coupons disabled, ignoring code=%s", normalized)
            return None
        return coupon

    def _resolve(self, code: str) -> CouponConfig | None:
        for source in self.sources:
            try:
                return source.lookup(code)
            except CouponNotFound:
                continue
            except SQLAlchemyError:
                logger.exception("Coupon source %s unavailable for code=%s", source.name, code)
                continue
        return None

    def can_use_dev_coupon(self, coupon: CouponConfig, email: str | None) -> DevCouponAccess:
        """Dev coupons are open outside production and admin-only inside it."""
        if not coupon.is_dev_coupon:
            return DevCouponAccess(allowed=True)
        if not self.config.is_production:
            return DevCouponAccess(allowed=True)
        if not email or not email.strip():
            return DevCouponAccess(allowed=False, reason="Dev coupon requires a signed-in admin")
        if email.strip().lower() in self.config.dev_coupon_admin_emails:
            return DevCouponAccess(allowed=True)
        return DevCouponAccess(allowed=False, reason="Dev coupon not available for this account")
