"""
E2E payment scenarios against the mock gateway server.

The real Paystack and Flutterwave clients talk to mock_servers/gateway_server
in-process through httpx.ASGITransport, so the whole path runs:
webhook -> parse -> verify over HTTP -> record -> ledger credit.

Scenarios:
- basic_buyer: Paystack purchase priced from the verified amount
- standard_buyer: Flutterwave purchase with an explicit point count
- outage: gateway down, webhook answered 503, redelivery credits once
- forged: webhook for a reference the gateway never saw
- upgrade_then_topup: a cheaper purchase never downgrades the plan
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from fakedetector_accounts.api.dependencies import get_alert_client, get_gateways
from fakedetector_accounts.api.main import create_app
from fakedetector_accounts.domain.events import FLUTTERWAVE, PAYSTACK
from fakedetector_accounts.domain.models import PaymentStatus, PlanTier
from fakedetector_accounts.infrastructure.clients.alerts import AlertWebhookClient
from fakedetector_accounts.infrastructure.clients.flutterwave import FlutterwaveClient
from fakedetector_accounts.infrastructure.clients.paystack import PaystackClient
from fakedetector_accounts.infrastructure.database.repositories import PaymentRepository
from fakedetector_accounts.infrastructure.database.session import get_db
from mock_servers.gateway_server.main import create_app as create_gateway_app

MOCK_GATEWAY_URL = "http://mock-gateway"


@pytest.fixture
def gateway_app():
    return create_gateway_app()


@pytest.fixture
def gateway_admin(gateway_app) -> TestClient:
    """Seeds transactions and toggles outages on the mock gateway"""
    return TestClient(gateway_app)


@pytest.fixture
def service(db, gateway_app) -> TestClient:
    app = create_app()
    transport = httpx.ASGITransport(app=gateway_app)

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateways] = lambda: {
        PAYSTACK: PaystackClient(base_url=MOCK_GATEWAY_URL, secret_key="sk_test", timeout=5, transport=transport),
        FLUTTERWAVE: FlutterwaveClient(base_url=MOCK_GATEWAY_URL, secret_key="flw_test", timeout=5, transport=transport),
    }
    app.dependency_overrides[get_alert_client] = lambda: AlertWebhookClient(webhook_url=None)
    return TestClient(app)


def paystack_webhook(reference):
    return {"event": "charge.success", "data": {"reference": reference, "amount": 100, "status": "success"}}


def flutterwave_webhook(transaction_id):
    return {"event": "charge.completed", "data": {"id": transaction_id, "status": "successful", "amount": 1}}


def test_basic_buyer_paystack_purchase(service, gateway_admin, make_account):
    """
    basic_buyer: 7,500 NGN at 75 NGN per basic point
    Expected: 100 basic points and a basic plan
    """
    user_id = make_account("basic@example.com", PlanTier.FREE)
    gateway_admin.post(
        "/_seed",
        json={"gateway": "paystack", "transaction_id": "ps_100", "amount_naira": 7500, "email": "basic@example.com"},
    )

    response = service.post("/v1/webhooks/paystack", json=paystack_webhook("ps_100"))

    assert response.status_code == 200
    assert response.json()["status"] == "credited"
    assert response.json()["points"] == 100

    consumed = service.post(f"/v1/ledger/{user_id}/consume").json()
    assert consumed["tier_used"] == "basic"
    assert consumed["balance"]["per_tier"]["basic"] == 99
    assert consumed["balance"]["plan_tier"] == "basic"


def test_standard_buyer_flutterwave_purchase(service, gateway_admin, make_account):
    """
    standard_buyer: explicit point count in the transaction meta
    Expected: points credited as reported, plan upgraded to standard
    """
    user_id = make_account("standard@example.com", PlanTier.FREE, free=1)
    gateway_admin.post(
        "/_seed",
        json={
            "gateway": "flutterwave",
            "transaction_id": "4410021",
            "status": "successful",
            "amount_naira": 5000,
            "email": "standard@example.com",
            "plan_id": "standard",
            "points_count": 50,
        },
    )

    response = service.post("/v1/webhooks/flutterwave", json=flutterwave_webhook(4410021))

    assert response.status_code == 200
    assert response.json()["status"] == "credited"

    balance = service.get(f"/v1/ledger/{user_id}/balance").json()
    assert balance["plan_tier"] == "standard"
    assert balance["per_tier"]["standard"] == 50
    assert balance["per_tier"]["free"] == 1
    assert balance["total"] == 51


def test_outage_then_redelivery_credits_once(service, gateway_admin, gateway_app, make_account, db):
    """
    outage: the gateway's verify API is down for the first delivery
    Expected: 503 with a pending record, then exactly one credit on redelivery
    """
    user_id = make_account("outage@example.com", PlanTier.FREE)
    gateway_admin.post(
        "/_seed",
        json={"gateway": "paystack", "transaction_id": "ps_outage", "amount_naira": 750, "email": "outage@example.com"},
    )
    gateway_admin.post("/_outage", params={"enabled": True})

    first = service.post("/v1/webhooks/paystack", json=paystack_webhook("ps_outage"))

    assert first.status_code == 503
    record = PaymentRepository(db).get_by_transaction_id("ps_outage")
    assert record.status == PaymentStatus.PENDING.value
    assert service.get(f"/v1/ledger/{user_id}/balance").json()["total"] == 0

    gateway_admin.post("/_outage", params={"enabled": False})
    second = service.post("/v1/webhooks/paystack", json=paystack_webhook("ps_outage"))
    third = service.post("/v1/webhooks/paystack", json=paystack_webhook("ps_outage"))

    assert second.json()["status"] == "credited"
    assert third.json()["status"] == "duplicate_ignored"
    assert gateway_app.state.verify_calls == 2
    assert service.get(f"/v1/ledger/{user_id}/balance").json()["per_tier"]["basic"] == 10
    assert PaymentRepository(db).count_completed("ps_outage") == 1


def test_forged_webhook_is_not_credited(service, make_account, db):
    """
    forged: a charge.success the gateway has no record of
    Expected: acknowledged as verification_failed, no points
    """
    user_id = make_account("victim@example.com", PlanTier.FREE)

    response = service.post("/v1/webhooks/paystack", json=paystack_webhook("ps_forged"))

    assert response.status_code == 200
    assert response.json()["status"] == "verification_failed"
    assert PaymentRepository(db).get_by_transaction_id("ps_forged").status == PaymentStatus.FAILED.value
    assert service.get(f"/v1/ledger/{user_id}/balance").json()["total"] == 0


def test_upgrade_then_topup_keeps_higher_plan(service, gateway_admin, make_account):
    """
    upgrade_then_topup: business purchase followed by a basic one
    Expected: plan stays business, consumption drains business first
    """
    user_id = make_account("owner@example.com", PlanTier.FREE)
    for reference, plan, naira in (("ps_biz", "business", 1300), ("ps_topup", "basic", 750)):
        gateway_admin.post(
            "/_seed",
            json={
                "gateway": "paystack",
                "transaction_id": reference,
                "amount_naira": naira,
                "email": "owner@example.com",
                "plan_id": plan,
            },
        )
        assert service.post("/v1/webhooks/paystack", json=paystack_webhook(reference)).json()["status"] == "credited"

    balance = service.get(f"/v1/ledger/{user_id}/balance").json()
    assert balance["plan_tier"] == "business"
    assert balance["per_tier"] == {"free": 0, "basic": 10, "standard": 0, "business": 10}

    assert service.post(f"/v1/ledger/{user_id}/consume").json()["tier_used"] == "business"
