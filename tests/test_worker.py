"""Tests for worker background tasks and cron job registration."""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest

from roomledger.core import database as db_module
from roomledger.models.audit_log import AuditLog
from roomledger.models.booking import BookingStatus
from roomledger.models.shared import utc_now
from roomledger.repositories.booking_repository import BookingRepository
from roomledger.services.booking_ledger_service import BookingLedgerService
from roomledger.services.refund_reconciliation import RefundReconciliationService
from roomledger.worker import (
    WorkerSettings,
    expire_pending_bookings_task,
    record_audit_event_task,
    send_refund_notification,
)
from tests.conftest import CUSTOMER_ID, make_booking


class TestSendRefundNotification:
    @pytest.mark.asyncio
    async def test_sends_for_existing_refund(self, db_session, ledger_config):
        booking = make_booking(db_session, gross_amount=5000)
        RefundReconciliationService(db_session, ledger_config).apply_refund(booking, 5000)
        db_session.commit()

        with patch("roomledger.worker.SessionLocal", db_module.SessionLocal):
            assert await send_refund_notification({}, str(booking.id)) is True

    @pytest.mark.asyncio
    async def test_missing_refund(self, db_session):
        with patch("roomledger.worker.SessionLocal", db_module.SessionLocal):
            assert await send_refund_notification({}, str(uuid.uuid4())) is False


class TestRecordAuditEventTask:
    @pytest.mark.asyncio
    async def test_writes_entry(self, db_session):
        result = await record_audit_event_task(
            {}, "booking", "b-1", "cancelled", {"credits_restored": 300}, "user", "u-1"
        )

        assert result is True
        entry = db_session.query(AuditLog).one()
        assert entry.resource_type == "booking"
        assert entry.changes == {"credits_restored": 300}
        assert entry.actor_id == "u-1"


class TestExpirePendingBookingsTask:
    @pytest.mark.asyncio
    async def test_expires_lapsed_bookings(self, db_session, ledger_config):
        booking = BookingLedgerService(db_session, ledger_config).finalize_booking(
            CUSTOMER_ID, 10000
        ).booking
        booking.expires_at = utc_now() - timedelta(minutes=1)
        db_session.commit()
        booking_id = booking.id

        with patch("roomledger.worker.SessionLocal", db_module.SessionLocal):
            count = await expire_pending_bookings_task({})

        assert count == 1
        db_session.expire_all()
        assert BookingRepository(db_session).get_by_id(booking_id).status == (
            BookingStatus.CANCELLED.value
        )

    @pytest.mark.asyncio
    async def test_nothing_to_expire(self, db_session):
        with patch("roomledger.worker.SessionLocal", db_module.SessionLocal):
            assert await expire_pending_bookings_task({}) == 0


class TestWorkerSettings:
    def test_functions_registered(self):
        names = {f.__name__ for f in WorkerSettings.functions}
        assert names == {
            "send_refund_notification",
            "record_audit_event_task",
            "expire_pending_bookings_task",
        }

    def test_expiry_cron_runs_every_five_minutes(self):
        assert len(WorkerSettings.cron_jobs) == 1
        job = WorkerSettings.cron_jobs[0]
        assert job.coroutine is expire_pending_bookings_task
        assert job.minute == {0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55}
