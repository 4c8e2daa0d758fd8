"""Integration tests for the settlement, payout and gateway endpoints."""

import inspect
from datetime import UTC, datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from payments.api.routes import admin_router, brand_router, create_payout, gateway_router, run_payout
from shared.api import register_error_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(admin_router)
    app.include_router(brand_router)
    app.include_router(gateway_router)
    register_error_handlers(app)
    return TestClient(app)


def _register_upi(client, brand_id="brand-001"):
    response = client.put(
        f"/payments/brands/{brand_id}/payout-account",
        json={"accountHolder": "Kora Studio", "brandName": "Kora", "upiId": "kora@okaxis"},
    )
    assert response.status_code == 200
    return response.json()


class TestBrandPayments:
    def test_rows_per_brand(self, client, seed_order):
        seed_order(brand_id="brand-001", total=100000.0, delivered=True)
        seed_order(brand_id="brand-002", total=5000.0, delivered=True)

        response = client.get("/payments/admin/brand-payments")
        assert response.status_code == 200
        rows = {row["brand_id"]: row for row in response.json()}
        assert rows["brand-001"]["payable"] == 82900.0
        assert rows["brand-001"]["payment_status"] == "Pending"
        assert rows["brand-001"]["can_pay"] is False
        assert rows["brand-001"]["pay_disabled_reason"] == "Missing payout destination details"
        assert rows["brand-002"]["eligible_orders"] == 1

    def test_commission_override(self, client, seed_order):
        seed_order(total=100000.0, delivered=True)
        row = client.get("/payments/admin/brand-payments", params={"commissionRate": 0.2}).json()[0]
        assert row["payable"] == 77900.0

    def test_commission_out_of_bounds_is_400(self, client, seed_order):
        seed_order(total=100000.0, delivered=True)
        response = client.get("/payments/admin/brand-payments", params={"commissionRate": 0.3})
        assert response.status_code == 400

    def test_filter_by_brand_and_status(self, client, seed_order):
        seed_order(brand_id="brand-001", total=10000.0, delivered=True)
        seed_order(brand_id="brand-002", total=10000.0, delivered=True)
        client.post(
            "/payments/admin/payout",
            json={"brandId": "brand-002", "amount": 8200.0, "gatewayPaymentId": "utr_0001"},
        )

        completed = client.get("/payments/admin/brand-payments", params={"status": "Completed"}).json()
        assert [row["brand_id"] for row in completed] == ["brand-002"]
        only = client.get("/payments/admin/brand-payments", params={"brandId": "brand-001"}).json()
        assert [row["brand_id"] for row in only] == ["brand-001"]

    def test_reporting_window(self, client, seed_order):
        now = datetime.now(UTC)
        seed_order(total=10000.0, delivered=True, created_at=now - timedelta(days=40))
        seed_order(total=10000.0, delivered=True)

        params = {"from": (now - timedelta(days=20)).isoformat(), "to": (now + timedelta(days=1)).isoformat()}
        row = client.get("/payments/admin/brand-payments", params=params).json()[0]
        assert row["total_orders"] == 1


class TestPayoutEndpoints:
    def test_record_payout(self, client, seed_order):
        seed_order(total=10000.0, delivered=True)
        response = client.post(
            "/payments/admin/payout",
            json={"brandId": "brand-001", "amount": 2000.0, "gatewayPaymentId": "utr_0001", "recordedBy": "finance"},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["completed_payments"] == 2000.0
        assert body["pending_amount"] == 6200.0
        assert body["payment_status"] == "Partial"

    def test_duplicate_payout_is_409(self, client, seed_order):
        seed_order(total=10000.0, delivered=True)
        payload = {"brandId": "brand-001", "amount": 2000.0, "gatewayPaymentId": "utr_0001"}
        client.post("/payments/admin/payout", json=payload)
        response = client.post("/payments/admin/payout", json={**payload, "amount": 3000.0})
        assert response.status_code == 409
        assert response.json()["error"] == "duplicate_payout"

    def test_overpayment_is_400(self, client, seed_order):
        seed_order(total=10000.0, delivered=True)
        response = client.post(
            "/payments/admin/payout",
            json={"brandId": "brand-001", "amount": 9000.0, "gatewayPaymentId": "utr_0001"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "not_eligible"

    def test_execute_payout(self, client, seed_order):
        seed_order(total=10000.0, delivered=True)
        _register_upi(client)
        response = client.post("/payments/admin/payout/execute", json={"brandId": "brand-001"})
        assert response.status_code == 201
        assert response.json()["payment_status"] == "Completed"

        payouts = client.get("/payments/brands/brand-001/payouts").json()
        assert len(payouts) == 1
        assert payouts[0]["source"] == "gateway"
        assert payouts[0]["amount"] == 8200.0

    def test_gateway_decline_is_502(self, client, seed_order, fake_gateway):
        seed_order(total=10000.0, delivered=True)
        _register_upi(client)
        fake_gateway.configure(should_succeed=False)
        response = client.post("/payments/admin/payout/execute", json={"brandId": "brand-001"})
        assert response.status_code == 502

    @pytest.mark.parametrize("handler", [create_payout, run_payout])
    def test_payout_handlers_run_in_threadpool(self, handler):
        assert not inspect.iscoroutinefunction(handler)


class TestBrandEndpoints:
    def test_balance(self, client, seed_order):
        seed_order(total=10000.0, delivered=True)
        body = client.get("/payments/brands/brand-001/balance").json()
        assert body["payable"] == 8200.0
        assert body["pending_amount"] == 8200.0

    def test_register_account(self, client):
        body = _register_upi(client)
        assert body["mode"] == "vpa"
        assert body["missing_details"] == []

    def test_invalid_account_is_400(self, client):
        response = client.put(
            "/payments/brands/brand-001/payout-account",
            json={"accountHolder": "Kora Studio", "ifscCode": "BAD"},
        )
        assert response.status_code == 400


class TestAdminSummary:
    def test_summary(self, client, seed_order):
        seed_order(total=10000.0, delivered=True)
        seed_order(total=5000.0, paid=False)
        client.post(
            "/payments/admin/payout",
            json={"brandId": "brand-001", "amount": 1000.0, "gatewayPaymentId": "utr_0001"},
        )

        body = client.get("/payments/admin/summary").json()
        assert body["total_orders"] == 2
        assert body["completed_orders"] == 1
        assert body["total_revenue"] == 10000.0
        assert body["total_paid_out"] == 1000.0


class TestGatewayConfiguration:
    def test_configure_fake_gateway(self, client):
        response = client.post("/payments/gateway/configure", json={"should_succeed": False, "faults": ["timeout"]})
        assert response.status_code == 200
        assert response.json()["faults"] == ["timeout"]

    def test_unknown_fault_is_400(self, client):
        response = client.post("/payments/gateway/configure", json={"faults": ["meteor"]})
        assert response.status_code == 400

    def test_blocked_in_production(self, client, monkeypatch):
        monkeypatch.setenv("PROTEAN_ENV", "production")
        response = client.post("/payments/gateway/configure", json={})
        assert response.status_code == 403
