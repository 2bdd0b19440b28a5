"""Integration tests for gateway verification clients over a mocked transport"""

import httpx
import pytest

from fakedetector_accounts.domain.exceptions import GatewayUnavailableError
from fakedetector_accounts.infrastructure.clients.flutterwave import FlutterwaveClient
from fakedetector_accounts.infrastructure.clients.gateway import GatewayClient
from fakedetector_accounts.infrastructure.clients.paystack import PaystackClient
from fakedetector_accounts.infrastructure.notifications.sinks import NotificationSink


def paystack_client(handler) -> PaystackClient:
    return PaystackClient(
        base_url="https://paystack.test",
        secret_key="sk_test_123",
        timeout=2.0,
        transport=httpx.MockTransport(handler),
    )


def flutterwave_client(handler) -> FlutterwaveClient:
    return FlutterwaveClient(
        base_url="https://flutterwave.test",
        secret_key="FLWSECK_TEST",
        timeout=2.0,
        transport=httpx.MockTransport(handler),
    )


async def test_paystack_verified_transaction():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(
            200,
            json={
                "status": True,
                "message": "Verification successful",
                "data": {
                    "reference": "ref_1",
                    "status": "success",
                    "amount": 750000,
                    "currency": "NGN",
                    "customer": {"email": "buyer@example.com"},
                    "metadata": {
                        "planId": "basic",
                        "custom_fields": [
                            {"display_name": "Points Purchase", "variable_name": "points_count", "value": 100}
                        ],
                    },
                },
            },
        )

    result = await paystack_client(handler).verify_transaction("ref_1")

    assert seen == {"path": "/transaction/verify/ref_1", "auth": "Bearer sk_test_123"}
    assert result.verified
    assert result.amount_minor == 750000
    assert result.customer_email == "buyer@example.com"
    assert result.purchased_tier == "basic"
    assert result.points_count == 100


async def test_paystack_points_from_metadata_json_string():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "status": True,
                "data": {
                    "status": "success",
                    "amount": 130000,
                    "customer": {"email": "b@example.com"},
                    "metadata": '{"pointsCount": "10", "planId": "business"}',
                },
            },
        )

    result = await paystack_client(handler).verify_transaction("ref_2")

    assert result.points_count == 10
    assert result.purchased_tier == "business"
    assert result.transaction_id == "ref_2"


async def test_paystack_non_success_status_not_verified():
    def handler(request):
        return httpx.Response(
            200,
            json={"status": True, "data": {"status": "failed", "gateway_response": "Declined", "amount": 100}},
        )

    result = await paystack_client(handler).verify_transaction("ref_3")

    assert not result.verified
    assert result.error == "Declined"


async def test_paystack_4xx_not_verified_with_gateway_message():
    def handler(request):
        return httpx.Response(400, json={"status": False, "message": "Transaction reference not found"})

    result = await paystack_client(handler).verify_transaction("ref_missing")

    assert not result.verified
    assert result.error == "Transaction reference not found"


async def test_5xx_raises_gateway_unavailable():
    def handler(request):
        return httpx.Response(502, text="Bad Gateway")

    with pytest.raises(GatewayUnavailableError):
        await paystack_client(handler).verify_transaction("ref_4")


async def test_timeout_raises_gateway_unavailable():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(GatewayUnavailableError, match="timeout"):
        await flutterwave_client(handler).verify_transaction("1")


async def test_connection_error_raises_gateway_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GatewayUnavailableError):
        await paystack_client(handler).verify_transaction("ref_5")


async def test_unreadable_body_raises_gateway_unavailable():
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(GatewayUnavailableError):
        await paystack_client(handler).verify_transaction("ref_6")


async def test_flutterwave_verified_transaction_converts_naira():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        return httpx.Response(
            200,
            json={
                "status": "success",
                "message": "Transaction fetched successfully",
                "data": {
                    "id": 285959875,
                    "status": "successful",
                    "amount": 7500.5,
                    "currency": "NGN",
                    "customer": {"email": "buyer@example.com"},
                    "meta": {"planId": "standard", "pointsCount": 75},
                },
            },
        )

    result = await flutterwave_client(handler).verify_transaction("285959875")

    assert seen["path"] == "/v3/transactions/285959875/verify"
    assert result.verified
    assert result.amount_minor == 750050
    assert result.purchased_tier == "standard"
    assert result.points_count == 75


async def test_flutterwave_unsuccessful_status():
    def handler(request):
        return httpx.Response(
            200,
            json={"status": "success", "data": {"id": 1, "status": "failed", "processor_response": "Do not honor"}},
        )

    result = await flutterwave_client(handler).verify_transaction("1")

    assert not result.verified
    assert result.error == "Do not honor"


async def test_flutterwave_error_envelope():
    def handler(request):
        return httpx.Response(200, json={"status": "error", "message": "No transaction was found for this id"})

    result = await flutterwave_client(handler).verify_transaction("2")

    assert not result.verified
    assert result.error == "No transaction was found for this id"


async def test_paystack_tier_from_plan_type_custom_field():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "status": True,
                "data": {
                    "status": "success",
                    "amount": 100000,
                    "customer": {"email": "b@example.com"},
                    "metadata": {
                        "custom_fields": [
                            {"display_name": "Plan Type", "variable_name": "plan_type", "value": "standard"},
                            {"display_name": "Points Purchase", "variable_name": "points_count", "value": 10},
                        ]
                    },
                },
            },
        )

    result = await paystack_client(handler).verify_transaction("ref_7")

    assert result.purchased_tier == "standard"
    assert result.points_count == 10


def test_gateway_client_must_implement_parsing():
    class HalfClient(GatewayClient):
        def verify_path(self, transaction_id):
            return f"/verify/{transaction_id}"

    with pytest.raises(TypeError):
        HalfClient(base_url="https://half.test", secret_key="k", timeout=1.0)


def test_notification_sink_must_implement_emit():
    class SilentSink(NotificationSink):
        pass

    with pytest.raises(TypeError):
        SilentSink()
