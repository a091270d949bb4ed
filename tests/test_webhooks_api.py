"""Tests for the payment gateway webhook endpoint."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError

from roomledger.core.config import settings
from roomledger.main import app
from roomledger.models.booking import BookingStatus, FinancialStatus
from roomledger.models.refund import RefundStatus
from roomledger.models.webhook_event import WebhookEvent, WebhookEventStatus
from roomledger.repositories.booking_repository import BookingRepository
from roomledger.repositories.refund_repository import RefundRepository
from roomledger.services.booking_ledger_service import BookingLedgerService
from roomledger.services.refund_reconciliation import RefundReconciliationService
from tests.conftest import CUSTOMER_ID, make_booking

TOKEN = "whsec-test-token"
HEADERS = {"asaas-access-token": TOKEN}


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def webhook_token(monkeypatch):
    monkeypatch.setattr(settings, "ASAAS_WEBHOOK_TOKEN", TOKEN)


@pytest.fixture
def enqueue_mocks():
    with (
        patch("roomledger.routers.webhooks.enqueue_audit_event", new_callable=AsyncMock) as audit,
        patch(
            "roomledger.routers.webhooks.enqueue_refund_notification", new_callable=AsyncMock
        ) as notify,
    ):
        yield audit, notify


def _post(client, payload, headers=HEADERS):
    return client.post("/v1/webhooks/asaas", json=payload, headers=headers)


def _unique_violation():
    return IntegrityError(
        "INSERT INTO refunds", {}, Exception("UNIQUE constraint failed: refunds.booking_id")
    )


class TestWebhookAuth:
    def test_missing_token(self, client):
        assert _post(client, {"event": "PAYMENT_CONFIRMED"}, headers={}).status_code == 401

    def test_wrong_token(self, client):
        response = _post(
            client, {"event": "PAYMENT_CONFIRMED"}, headers={"asaas-access-token": "x"}
        )
        assert response.status_code == 401

    def test_unconfigured_token_rejects_everything(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ASAAS_WEBHOOK_TOKEN", "")
        assert _post(client, {"event": "PAYMENT_CONFIRMED"}).status_code == 401


class TestWebhookProcessing:
    def test_malformed_body(self, client):
        response = client.post(
            "/v1/webhooks/asaas",
            content=b"not json",
            headers={**HEADERS, "Content-Type": "application/json"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "invalid_payload"

    def test_payload_of_wrong_shape(self, client):
        response = _post(client, [1, 2, 3])
        assert response.status_code == 200
        assert response.json()["status"] == "invalid_payload"

    def test_confirmation(self, client, db_session, ledger_config):
        booking = BookingLedgerService(db_session, ledger_config).finalize_booking(
            CUSTOMER_ID, 10000
        ).booking

        response = _post(
            client,
            {
                "id": "evt_1",
                "event": "PAYMENT_CONFIRMED",
                "payment": {"id": "pay_1", "externalReference": str(booking.id), "value": 10000},
            },
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "status": "processed", "detail": "paid"}
        db_session.expire_all()
        booking = BookingRepository(db_session).get_by_id(booking.id)
        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.financial_status == FinancialStatus.PAID.value

    def test_duplicate_delivery(self, client):
        payload = {"id": "evt_dup", "event": "PAYMENT_CREATED"}
        assert _post(client, payload).json()["status"] == "processed"
        assert _post(client, payload).json()["status"] == "duplicate"

    def test_refund_enqueues_side_effects(self, client, db_session, enqueue_mocks):
        booking = make_booking(db_session, gross_amount=8500, credits_used=3000)

        response = _post(
            client,
            {
                "id": "evt_refund",
                "event": "PAYMENT_REFUNDED",
                "payment": {
                    "id": "pay_2",
                    "externalReference": str(booking.id),
                    "refundedValue": 8500,
                },
            },
        )

        assert response.status_code == 200
        assert response.json()["detail"] == "refund_created"
        refund = RefundRepository(db_session).get_by_booking_id(booking.id)
        assert refund.status == RefundStatus.COMPLETED.value
        assert refund.credits_returned == 3000
        assert refund.money_returned == 5500
        audit, notify = enqueue_mocks
        audit.assert_awaited_once()
        notify.assert_awaited_once_with(str(booking.id))

    def test_unknown_reference_is_acknowledged(self, client, db_session, enqueue_mocks):
        response = _post(client, {"event": "PAYMENT_REFUNDED", "payment": {"id": "pay_3"}})
        assert response.status_code == 200
        assert response.json()["status"] == WebhookEventStatus.IGNORED_NO_REFERENCE.value
        audit, notify = enqueue_mocks
        audit.assert_not_awaited()
        notify.assert_not_awaited()

    def test_processing_failure_is_recorded(self, client, db_session):
        with patch(
            "roomledger.routers.webhooks.RefundReconciliationService.process_webhook",
            side_effect=RuntimeError("boom"),
        ):
            response = _post(client, {"id": "evt_fail", "event": "PAYMENT_REFUNDED"})

        assert response.status_code == 200
        assert response.json()["status"] == WebhookEventStatus.FAILED.value
        event = db_session.query(WebhookEvent).filter(WebhookEvent.event_key == "evt_fail").one()
        assert event.status == WebhookEventStatus.FAILED.value
        assert event.detail == "processing_error"
        assert event.payload["event"] == "PAYMENT_REFUNDED"

    def test_conflicting_refund_is_retried_and_upgrades(
        self, client, db_session, ledger_config, monkeypatch, enqueue_mocks
    ):
        booking = make_booking(db_session, gross_amount=8500)
        RefundReconciliationService(db_session, ledger_config).apply_refund(booking, 4000)
        db_session.commit()

        real_process = RefundReconciliationService.process_webhook
        calls = []

        def process_after_conflict(self, payload):
            calls.append(payload)
            if len(calls) == 1:
                # A partial refund event for the same booking committed first
                raise _unique_violation()
            return real_process(self, payload)

        monkeypatch.setattr(RefundReconciliationService, "process_webhook", process_after_conflict)

        response = _post(
            client,
            {
                "id": "evt_full_refund",
                "event": "PAYMENT_REFUNDED",
                "payment": {
                    "id": "pay_4",
                    "externalReference": str(booking.id),
                    "refundedValue": 8500,
                },
            },
        )

        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "status": "processed",
            "detail": "refund_upgraded",
        }
        assert len(calls) == 2
        db_session.expire_all()
        refund = RefundRepository(db_session).get_by_booking_id(booking.id)
        assert refund.status == RefundStatus.COMPLETED.value
        assert refund.refunded_amount == 8500
        event = (
            db_session.query(WebhookEvent)
            .filter(WebhookEvent.event_key == "evt_full_refund")
            .one()
        )
        assert event.status == WebhookEventStatus.PROCESSED.value

    def test_conflict_that_persists_is_recorded_as_failed(self, client, db_session):
        with patch(
            "roomledger.routers.webhooks.RefundReconciliationService.process_webhook",
            side_effect=_unique_violation(),
        ) as process:
            response = _post(client, {"id": "evt_stuck", "event": "PAYMENT_REFUNDED"})

        assert process.call_count == 2
        assert response.json()["status"] == WebhookEventStatus.FAILED.value
        event = db_session.query(WebhookEvent).filter(WebhookEvent.event_key == "evt_stuck").one()
        assert event.detail == "processing_error"
