"""Tagged error codes and exceptions for the coupon/credit ledger.

Coupon and override rejections are normally returned as coded results; the
exceptions here exist for the places where a rejection must stop the caller's
unit of work. ``CouponUsageRaceError`` is the one error that must abort the
enclosing transaction and is never converted into a result inside the ledger.
"""

from enum import Enum


class CouponErrorCode(str, Enum):
    COUPON_INVALID = "COUPON_INVALID"
    COUPON_ALREADY_USED = "COUPON_ALREADY_USED"
    DEV_COUPON_BLOCKED = "DEV_COUPON_BLOCKED"


class OverrideErrorCode(str, Enum):
    OVERRIDE_MISSING_REASON = "OVERRIDE_MISSING_REASON"
    OVERRIDE_INVALID_AMOUNT = "OVERRIDE_INVALID_AMOUNT"
    OVERRIDE_NOT_ALLOWED = "OVERRIDE_NOT_ALLOWED"


class LedgerError(Exception):
    """Base class for ledger errors."""


class CouponRejectedError(LedgerError):
    """A coupon cannot be used for the requested operation (client error)."""

    def __init__(self, code: CouponErrorCode, coupon_code: str, reason: str | None = None):
        self.code = code
        self.coupon_code = coupon_code
        self.reason = reason or code.value
        super().__init__(f"{code.value}: {coupon_code}")


class CouponAlreadyUsedError(CouponRejectedError):
    """A single-use coupon is already attached to a different booking or purchase."""

    def __init__(self, coupon_code: str, existing_booking_id: str | None = None):
        self.existing_booking_id = existing_booking_id
        super().__init__(
            CouponErrorCode.COUPON_ALREADY_USED,
            coupon_code,
            f"Coupon {coupon_code} has already been used",
        )


class CouponUsageRaceError(LedgerError):
    """A concurrent request inserted the same coupon usage row first.

    The session that raised this is unusable: the caller must roll back and
    resolve the conflict with a fresh read.
    """

    def __init__(self, user_id: str, coupon_code: str, context: str):
        self.user_id = user_id
        self.coupon_code = coupon_code
        self.context = context
        super().__init__(f"Coupon usage race for {coupon_code} ({context})")


class SnapshotInvariantError(LedgerError):
    """A price audit snapshot does not add up."""


class OverrideRejectedError(LedgerError):
    """An administrative price override was refused."""

    def __init__(self, code: OverrideErrorCode, reason: str):
        self.code = code
        self.reason = reason
        super().__init__(f"{code.value}: {reason}")
