"""Tests for the coupon API endpoints."""

import pytest
from fastapi.testclient import TestClient

from roomledger.main import app


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


def _create(client, headers, **overrides):
    payload = {
        "code": "summer25",
        "discount_type": "percent",
        "value": 25,
        "description": "Summer promotion",
    }
    payload.update(overrides)
    return client.post("/v1/coupons/", json=payload, headers=headers)


class TestValidateCoupon:
    def test_valid_fallback_coupon(self, client, customer_headers):
        response = client.post(
            "/v1/coupons/validate",
            json={"code": "arthemi10", "amount": 10000},
            headers=customer_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["code"] == "ARTHEMI10"
        assert data["discount_type"] == "percent"
        assert data["final_amount"] == 9000
        assert data["discount_amount"] == 1000

    def test_invalid_coupon(self, client, customer_headers):
        response = client.post(
            "/v1/coupons/validate",
            json={"code": "nope", "amount": 10000},
            headers=customer_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is False
        assert data["error_code"] == "COUPON_INVALID"
        assert data["final_amount"] is None

    def test_requires_session(self, client):
        response = client.post("/v1/coupons/validate", json={"code": "ARTHEMI10", "amount": 100})
        assert response.status_code == 401

    def test_rejects_bad_token(self, client):
        response = client.post(
            "/v1/coupons/validate",
            json={"code": "ARTHEMI10", "amount": 100},
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert response.status_code == 401


class TestCouponAdmin:
    def test_create(self, client, admin_headers):
        response = _create(client, admin_headers)
        assert response.status_code == 201
        data = response.json()
        assert data["code"] == "SUMMER25"
        assert data["current_uses"] == 0
        assert data["is_active"] is True

    def test_create_duplicate(self, client, admin_headers):
        _create(client, admin_headers)
        response = _create(client, admin_headers, code="SUMMER25")
        assert response.status_code == 409

    def test_create_requires_admin(self, client, customer_headers):
        assert _create(client, customer_headers).status_code == 403

    def test_create_validation(self, client, admin_headers):
        response = _create(client, admin_headers, value=-5)
        assert response.status_code == 422

    def test_list(self, client, admin_headers):
        _create(client, admin_headers)
        _create(client, admin_headers, code="WINTER10", is_active=False)

        response = client.get("/v1/coupons/", headers=admin_headers)
        assert response.status_code == 200
        assert response.headers["X-Total-Count"] == "2"
        assert len(response.json()) == 2

        active = client.get("/v1/coupons/?is_active=true", headers=admin_headers)
        assert [c["code"] for c in active.json()] == ["SUMMER25"]

    def test_get_update_delete(self, client, admin_headers):
        _create(client, admin_headers)

        response = client.get("/v1/coupons/summer25", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["value"] == 25

        response = client.put(
            "/v1/coupons/SUMMER25",
            json={"is_active": False, "max_uses": 10},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert response.json()["max_uses"] == 10

        assert client.delete("/v1/coupons/SUMMER25", headers=admin_headers).status_code == 204
        assert client.get("/v1/coupons/SUMMER25", headers=admin_headers).status_code == 404

    def test_missing_coupon(self, client, admin_headers):
        assert client.put("/v1/coupons/NOPE", json={}, headers=admin_headers).status_code == 404
        assert client.delete("/v1/coupons/NOPE", headers=admin_headers).status_code == 404

    def test_inactive_coupon_no_longer_validates(self, client, admin_headers, customer_headers):
        _create(client, admin_headers, is_active=False)
        response = client.post(
            "/v1/coupons/validate",
            json={"code": "SUMMER25", "amount": 10000},
            headers=customer_headers,
        )
        assert response.json()["valid"] is False
