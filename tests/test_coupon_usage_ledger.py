"""Tests for the coupon usage ledger."""

import uuid

import pytest

from roomledger.core.config import LedgerConfig
from roomledger.core.errors import CouponErrorCode, CouponRejectedError, CouponUsageRaceError
from roomledger.models.booking import FinancialStatus
from roomledger.models.coupon import DiscountType
from roomledger.models.coupon_usage import CouponUsage, CouponUsageContext, CouponUsageStatus
from roomledger.repositories.coupon_repository import CouponRepository
from roomledger.schemas.coupon import CouponCreate
from roomledger.services.coupon_registry import CouponRegistry
from roomledger.services.coupon_usage_service import (
    CouponUsageConflict,
    CouponUsageLedger,
    CouponUsageMode,
)
from tests.conftest import CUSTOMER_ID, OTHER_CUSTOMER_ID, make_booking

BOOKING = CouponUsageContext.BOOKING


@pytest.fixture
def ledger(db_session, ledger_config):
    return CouponUsageLedger(db_session, CouponRegistry.for_session(db_session, ledger_config))


def _usage_rows(db_session):
    return db_session.query(CouponUsage).all()


class TestCheckCouponUsage:
    def test_invalid_code(self, ledger):
        check = ledger.check_coupon_usage(CUSTOMER_ID, "nope", BOOKING)
        assert check.can_use is False
        assert check.code == CouponErrorCode.COUPON_INVALID
        assert "NOPE" in check.reason

    def test_reusable_coupon_is_blocked_once_used(self, ledger, db_session):
        check = ledger.check_coupon_usage(CUSTOMER_ID, "ARTHEMI10", BOOKING)
        assert check.can_use is True
        assert check.coupon.code == "ARTHEMI10"

        booking = make_booking(db_session)
        ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "ARTHEMI10", BOOKING, booking_id=booking.id
        )
        db_session.commit()

        check = ledger.check_coupon_usage(CUSTOMER_ID, "ARTHEMI10", BOOKING)
        assert check.can_use is False
        assert check.code == CouponErrorCode.COUPON_ALREADY_USED

    def test_unused_single_use_coupon(self, ledger):
        check = ledger.check_coupon_usage(CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING)
        assert check.can_use is True
        assert check.coupon.single_use_per_user is True

    def test_used_single_use_coupon(self, ledger, db_session):
        booking = make_booking(db_session)
        ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=booking.id
        )
        db_session.commit()

        check = ledger.check_coupon_usage(CUSTOMER_ID, "primeiracompra", BOOKING)
        assert check.can_use is False
        assert check.code == CouponErrorCode.COUPON_ALREADY_USED

    def test_row_of_the_same_booking_does_not_block_a_retry(self, ledger, db_session):
        booking = make_booking(db_session)
        ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=booking.id
        )
        db_session.commit()

        same = ledger.check_coupon_usage(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=booking.id
        )
        other = ledger.check_coupon_usage(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=uuid.uuid4()
        )
        assert same.can_use is True
        assert other.code == CouponErrorCode.COUPON_ALREADY_USED

    def test_usage_is_scoped_per_user_and_context(self, ledger, db_session):
        booking = make_booking(db_session)
        ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=booking.id
        )
        db_session.commit()

        assert ledger.check_coupon_usage(OTHER_CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING).can_use
        assert ledger.check_coupon_usage(
            CUSTOMER_ID, "PRIMEIRACOMPRA", CouponUsageContext.CREDIT_PURCHASE
        ).can_use

    def test_dev_coupon_blocked_in_production(self, db_session):
        CouponRepository(db_session).create(
            CouponCreate(
                code="DEV100",
                discount_type=DiscountType.PERCENT,
                value=100,
                is_dev_coupon=True,
            )
        )
        config = LedgerConfig(environment="production")
        ledger = CouponUsageLedger(db_session, CouponRegistry.for_session(db_session, config))

        check = ledger.check_coupon_usage(CUSTOMER_ID, "DEV100", BOOKING, "someone@example.com")
        assert check.can_use is False
        assert check.code == CouponErrorCode.DEV_COUPON_BLOCKED
        assert check.is_dev_coupon is True


class TestRecordCouponUsage:
    def test_creates_used_row(self, ledger, db_session):
        booking = make_booking(db_session)
        record = ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "primeiracompra", BOOKING, booking_id=booking.id
        )
        db_session.commit()

        assert record.ok is True
        assert record.mode == CouponUsageMode.CREATED
        rows = _usage_rows(db_session)
        assert len(rows) == 1
        assert rows[0].coupon_code == "PRIMEIRACOMPRA"
        assert rows[0].status == CouponUsageStatus.USED.value
        assert rows[0].booking_id == booking.id
        assert rows[0].credit_id is None

    def test_dev_coupon_is_not_recorded(self, ledger, db_session):
        record = ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "DEV100", BOOKING, is_dev_coupon=True
        )
        assert record.mode == CouponUsageMode.SKIPPED_DEV
        assert _usage_rows(db_session) == []

    def test_counts_global_uses(self, ledger, db_session):
        CouponRepository(db_session).create(
            CouponCreate(
                code="ONCE20",
                discount_type=DiscountType.PERCENT,
                value=20,
                single_use_per_user=True,
            )
        )
        booking = make_booking(db_session)
        ledger.record_coupon_usage_idempotent(CUSTOMER_ID, "ONCE20", BOOKING, booking_id=booking.id)
        db_session.commit()

        assert CouponRepository(db_session).get_by_code("ONCE20").current_uses == 1

    def test_max_uses_cap(self, ledger, db_session):
        CouponRepository(db_session).create(
            CouponCreate(code="LAUNCH", discount_type=DiscountType.FIXED, value=500, max_uses=1)
        )
        first = make_booking(db_session)
        second = make_booking(db_session, user_id=OTHER_CUSTOMER_ID)
        ledger.record_coupon_usage_idempotent(CUSTOMER_ID, "LAUNCH", BOOKING, booking_id=first.id)
        db_session.commit()

        with pytest.raises(CouponRejectedError) as exc_info:
            ledger.record_coupon_usage_idempotent(
                OTHER_CUSTOMER_ID, "LAUNCH", BOOKING, booking_id=second.id
            )
        db_session.rollback()

        assert exc_info.value.code == CouponErrorCode.COUPON_INVALID
        assert CouponRepository(db_session).get_by_code("LAUNCH").current_uses == 1
        assert ledger.count_usage(OTHER_CUSTOMER_ID, "LAUNCH", BOOKING) == 0

    def test_fallback_coupon_has_no_cap(self, ledger, db_session):
        booking = make_booking(db_session)
        record = ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "ARTHEMI10", BOOKING, booking_id=booking.id
        )
        assert record.mode == CouponUsageMode.CREATED

    def test_concurrent_insert_raises_race_error(self, ledger, db_session):
        first = make_booking(db_session)
        second = make_booking(db_session)
        ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=first.id
        )
        db_session.commit()

        with pytest.raises(CouponUsageRaceError) as exc_info:
            ledger.record_coupon_usage_idempotent(
                CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=second.id
            )
        db_session.rollback()

        assert exc_info.value.coupon_code == "PRIMEIRACOMPRA"
        assert ledger.count_usage(CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING) == 1


class TestRestoreCouponUsage:
    def test_paid_booking_keeps_coupon_burned(self, ledger, db_session):
        booking = make_booking(db_session, financial_status=FinancialStatus.PAID)
        ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=booking.id
        )
        db_session.commit()

        result = ledger.restore_coupon_usage(booking_id=booking.id, was_paid=booking.was_paid)
        db_session.commit()

        assert result.restored is False
        check = ledger.check_coupon_usage(CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING)
        assert check.can_use is False
        assert check.code == CouponErrorCode.COUPON_ALREADY_USED

    def test_unpaid_booking_gets_coupon_back_and_it_can_be_claimed(self, ledger, db_session):
        booking_b = make_booking(db_session, financial_status=FinancialStatus.PENDING)
        booking_c = make_booking(db_session, financial_status=FinancialStatus.PENDING)
        ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=booking_b.id
        )
        db_session.commit()

        result = ledger.restore_coupon_usage(booking_id=booking_b.id, was_paid=booking_b.was_paid)
        db_session.commit()
        assert result.restored is True
        assert result.coupon_code == "PRIMEIRACOMPRA"

        row = _usage_rows(db_session)[0]
        assert row.status == CouponUsageStatus.RESTORED.value
        assert row.booking_id is None
        assert row.restored_at is not None
        assert ledger.check_coupon_usage(CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING).can_use

        record = ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=booking_c.id
        )
        db_session.commit()
        assert record.mode == CouponUsageMode.CLAIMED_RESTORED
        assert ledger.count_usage(CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING) == 1
        db_session.refresh(row)
        assert row.status == CouponUsageStatus.USED.value
        assert row.booking_id == booking_c.id
        assert row.restored_at is None

    def test_restore_without_usage(self, ledger, db_session):
        booking = make_booking(db_session, financial_status=FinancialStatus.PENDING)
        assert ledger.restore_coupon_usage(booking_id=booking.id, was_paid=False).restored is False

    def test_restore_twice_only_restores_once(self, ledger, db_session):
        booking = make_booking(db_session, financial_status=FinancialStatus.PENDING)
        ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=booking.id
        )
        db_session.commit()

        assert ledger.restore_coupon_usage(booking_id=booking.id, was_paid=False).restored
        db_session.commit()
        assert not ledger.restore_coupon_usage(booking_id=booking.id, was_paid=False).restored

    def test_restore_gives_back_global_use(self, ledger, db_session):
        CouponRepository(db_session).create(
            CouponCreate(
                code="ONCE20",
                discount_type=DiscountType.PERCENT,
                value=20,
                single_use_per_user=True,
            )
        )
        booking = make_booking(db_session, financial_status=FinancialStatus.PENDING)
        ledger.record_coupon_usage_idempotent(CUSTOMER_ID, "ONCE20", BOOKING, booking_id=booking.id)
        db_session.commit()
        ledger.restore_coupon_usage(booking_id=booking.id, was_paid=False)
        db_session.commit()

        assert CouponRepository(db_session).get_by_code("ONCE20").current_uses == 0


class TestResolveUsageConflict:
    def test_same_booking_is_idempotent(self, ledger, db_session):
        booking = make_booking(db_session)
        ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=booking.id
        )
        db_session.commit()

        resolution = ledger.resolve_usage_conflict(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=booking.id
        )
        assert resolution.outcome == CouponUsageConflict.IDEMPOTENT
        assert resolution.existing_booking_id == booking.id

    def test_other_booking_is_already_used(self, ledger, db_session):
        first = make_booking(db_session)
        second = make_booking(db_session)
        ledger.record_coupon_usage_idempotent(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=first.id
        )
        db_session.commit()

        resolution = ledger.resolve_usage_conflict(
            CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING, booking_id=second.id
        )
        assert resolution.outcome == CouponUsageConflict.ALREADY_USED
        assert resolution.existing_booking_id == first.id

    def test_missing_row_is_already_used(self, ledger):
        resolution = ledger.resolve_usage_conflict(CUSTOMER_ID, "PRIMEIRACOMPRA", BOOKING)
        assert resolution.outcome == CouponUsageConflict.ALREADY_USED
        assert resolution.existing_booking_id is None
