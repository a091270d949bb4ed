"""Coupon repository for data access."""

from sqlalchemy import or_
from sqlalchemy.orm import Session

from roomledger.models.coupon import Coupon
from roomledger.schemas.coupon import CouponCreate, CouponUpdate


def normalize_code(code: str) -> str:
    return code.strip().upper()


class CouponRepository:
    """Repository for Coupon model."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
        is_active: bool | None = None,
    ) -> list[Coupon]:
        """Get all coupons with optional filters."""
        query = self.db.query(Coupon)

        if is_active is not None:
            query = query.filter(Coupon.is_active == is_active)

        return query.order_by(Coupon.created_at.desc()).offset(skip).limit(limit).all()

    def count(self) -> int:
        return self.db.query(Coupon).count()

    def get_by_code(self, code: str) -> Coupon | None:
        """Get a coupon by code (normalized)."""
        return self.db.query(Coupon).filter(Coupon.code == normalize_code(code)).first()

    def create(self, data: CouponCreate) -> Coupon:
        """Create a new coupon."""
        coupon = Coupon(
            code=normalize_code(data.code),
            discount_type=data.discount_type.value,
            value=data.value,
            description=data.description,
            single_use_per_user=data.single_use_per_user,
            is_dev_coupon=data.is_dev_coupon,
            is_active=data.is_active,
            valid_from=data.valid_from,
            valid_until=data.valid_until,
            min_amount_cents=data.min_amount_cents,
            max_uses=data.max_uses,
            current_uses=0,
        )
        self.db.add(coupon)
        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def update(self, code: str, data: CouponUpdate) -> Coupon | None:
        """Update a coupon by code."""
        coupon = self.get_by_code(code)
        if not coupon:
            return None

        update_data = data.model_dump(exclude_unset=True)
        for key, value in update_data.items():
            setattr(coupon, key, value)

        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def delete(self, code: str) -> bool:
        """Delete a coupon by code."""
        coupon = self.get_by_code(code)
        if not coupon:
            return False

        self.db.delete(coupon)
        self.db.commit()
        return True

    def increment_uses(self, code: str) -> int:
        """Count one more use unless ``max_uses`` is reached. Returns the rowcount.

        Participates in the caller's transaction.
        """
        return (
            self.db.query(Coupon)
            .filter(
                Coupon.code == normalize_code(code),
                or_(Coupon.max_uses.is_(None), Coupon.current_uses < Coupon.max_uses),
            )
            .update({Coupon.current_uses: Coupon.current_uses + 1}, synchronize_session="fetch")
        )

    def decrement_uses(self, code: str) -> int:
        """Give back one use, never going below zero."""
        return (
            self.db.query(Coupon)
            .filter(Coupon.code == normalize_code(code), Coupon.current_uses > 0)
            .update({Coupon.current_uses: Coupon.current_uses - 1}, synchronize_session="fetch")
        )
