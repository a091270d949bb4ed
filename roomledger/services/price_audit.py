"""Price audit snapshot written on every booking and credit purchase.

The snapshot is the only input refund reconciliation trusts, so it must be
complete and add up:

    gross_amount == net_amount + discount_amount
    net_amount == credits_used + amount_paid
"""

from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from roomledger.core.errors import SnapshotInvariantError
from roomledger.models.booking import Booking, PricingMode
from roomledger.models.credit import Credit
from roomledger.services.coupon_registry import CouponConfig
from roomledger.services.discount import DiscountResult


@dataclass(frozen=True)
class PriceAuditSnapshot:
    gross_amount: int
    discount_amount: int
    net_amount: int
    credits_used: int
    amount_paid: int
    coupon_code: str | None = None
    coupon_snapshot: dict[str, Any] | None = None

    @classmethod
    def build(
        cls,
        gross_amount: int,
        discount_amount: int,
        credits_used: int = 0,
        coupon_code: str | None = None,
        coupon_snapshot: dict[str, Any] | None = None,
    ) -> "PriceAuditSnapshot":
        """Derive net and amount paid from gross, discount and credits."""
        net_amount = gross_amount - discount_amount
        snapshot = cls(
            gross_amount=gross_amount,
            discount_amount=discount_amount,
            net_amount=net_amount,
            credits_used=credits_used,
            amount_paid=max(0, net_amount - credits_used),
            coupon_code=coupon_code,
            coupon_snapshot=coupon_snapshot,
        )
        snapshot.check_invariants()
        return snapshot

    @classmethod
    def from_discount(
        cls,
        gross_amount: int,
        discount: DiscountResult,
        coupon: CouponConfig | None = None,
        credits_used: int = 0,
    ) -> "PriceAuditSnapshot":
        applied = coupon if discount.coupon_applied else None
        return cls.build(
            gross_amount=gross_amount,
            discount_amount=discount.discount_amount,
            credits_used=credits_used,
            coupon_code=applied.code if applied else None,
            coupon_snapshot=applied.to_snapshot() if applied else None,
        )

    @classmethod
    def from_entity(cls, entity: Booking | Credit) -> "PriceAuditSnapshot":
        """Read the snapshot back. Rows written before auditing fall back to zero discount."""
        amount_paid = int(entity.amount_paid or 0)
        credits_used = int(entity.credits_used or 0)
        net_amount = entity.net_amount
        if net_amount is None:
            net_amount = credits_used + amount_paid
        gross_amount = entity.gross_amount
        if gross_amount is None:
            gross_amount = net_amount + int(entity.discount_amount or 0)
        return cls(
            gross_amount=int(gross_amount),
            discount_amount=int(entity.discount_amount or 0),
            net_amount=int(net_amount),
            credits_used=credits_used,
            amount_paid=amount_paid,
            coupon_code=entity.coupon_code,  # type: ignore[arg-type]
            coupon_snapshot=entity.coupon_snapshot,  # type: ignore[arg-type]
        )

    def check_invariants(self) -> None:
        if min(self.gross_amount, self.discount_amount, self.credits_used, self.amount_paid) < 0:
            raise SnapshotInvariantError(f"Negative amount in snapshot: {self}")
        if self.net_amount < 0:
            raise SnapshotInvariantError(f"Discount exceeds gross amount: {self}")
        if self.gross_amount != self.net_amount + self.discount_amount:
            raise SnapshotInvariantError(f"gross != net + discount: {self}")
        if self.net_amount != self.credits_used + self.amount_paid:
            raise SnapshotInvariantError(f"net != credits_used + amount_paid: {self}")

    def apply_to(self, entity: Booking | Credit) -> None:
        entity.gross_amount = self.gross_amount  # type: ignore[assignment]
        entity.discount_amount = self.discount_amount  # type: ignore[assignment]
        entity.net_amount = self.net_amount  # type: ignore[assignment]
        entity.credits_used = self.credits_used  # type: ignore[assignment]
        entity.amount_paid = self.amount_paid  # type: ignore[assignment]
        entity.coupon_code = self.coupon_code  # type: ignore[assignment]
        entity.coupon_snapshot = self.coupon_snapshot  # type: ignore[assignment]


class PriceAuditWriter:
    """Persists snapshots inside the caller's transaction."""

    def __init__(self, db: Session):
        self.db = db

    def write(self, entity: Booking | Credit, snapshot: PriceAuditSnapshot) -> None:
        """Stamp a snapshot on a row being finalized. Rows are audited exactly once."""
        snapshot.check_invariants()
        if entity.net_amount is not None:
            raise SnapshotInvariantError(f"Price audit already written for {entity.id}")
        if (
            isinstance(entity, Booking)
            and entity.pricing_mode == PricingMode.OVERRIDE.value
            and snapshot.amount_paid != entity.override_final_cents
        ):
            raise SnapshotInvariantError("Override bookings must pay exactly the override price")
        snapshot.apply_to(entity)
        self.db.flush()
