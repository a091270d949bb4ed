"""Tests for the price quote endpoint."""

import pytest
from fastapi.testclient import TestClient

from roomledger.main import app
from tests.conftest import grant_credits


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


class TestQuoteApi:
    def test_quote_with_coupon_and_credits(self, client, db_session, customer_headers):
        grant_credits(db_session, amount=3000)
        response = client.post(
            "/v1/pricing/quote",
            json={"gross_amount": 10000, "coupon_code": "PRIMEIRACOMPRA", "use_credits": True},
            headers=customer_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["net_amount"] == 8500
        assert data["credits_used"] == 3000
        assert data["amount_paid"] == 5500
        assert data["coupon_code"] == "PRIMEIRACOMPRA"
        assert data["coupon_applied"] is True
        assert data["pricing_mode"] == "normal"

    def test_invalid_coupon_reported(self, client, customer_headers):
        response = client.post(
            "/v1/pricing/quote",
            json={"gross_amount": 10000, "coupon_code": "NOPE"},
            headers=customer_headers,
        )
        assert response.status_code == 200
        assert response.json()["coupon_error"] == "COUPON_INVALID"
        assert response.json()["amount_paid"] == 10000

    def test_admin_override(self, client, admin_headers):
        response = client.post(
            "/v1/pricing/quote",
            json={"gross_amount": 10000, "override": {"final_cents": 2500, "reason": "Partner"}},
            headers={**admin_headers, "X-Request-ID": "req-42"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["pricing_mode"] == "override"
        assert data["amount_paid"] == 2500
        assert data["override_reason"] == "Partner"

    def test_customer_override_forbidden(self, client, customer_headers):
        response = client.post(
            "/v1/pricing/quote",
            json={"gross_amount": 10000, "override": {"final_cents": 0, "reason": "Free please"}},
            headers=customer_headers,
        )
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "OVERRIDE_NOT_ALLOWED"

    def test_override_without_reason(self, client, admin_headers):
        response = client.post(
            "/v1/pricing/quote",
            json={"gross_amount": 10000, "override": {"final_cents": 2500}},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "OVERRIDE_MISSING_REASON"

    def test_negative_gross_rejected(self, client, customer_headers):
        response = client.post(
            "/v1/pricing/quote", json={"gross_amount": -1}, headers=customer_headers
        )
        assert response.status_code == 422

    def test_requires_session(self, client):
        response = client.post("/v1/pricing/quote", json={"gross_amount": 100})
        assert response.status_code == 401
