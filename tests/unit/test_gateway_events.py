"""Unit tests for gateway webhook parsing"""

import pytest
from fakedetector_accounts.domain.events import (
    BankTransfer,
    ChargeCompleted,
    ChargeFailed,
    UnhandledEvent,
    parse_gateway_event,
)
from fakedetector_accounts.domain.exceptions import MalformedPayloadError, UnknownGatewayError


def test_paystack_charge_success():
    """Test only the reference is taken from a success payload"""
    event = parse_gateway_event(
        "paystack",
        {"event": "charge.success", "data": {"reference": "ref_123", "amount": 99999999, "status": "success"}},
    )

    assert event == ChargeCompleted(gateway="paystack", transaction_id="ref_123")


def test_paystack_charge_failed():
    event = parse_gateway_event(
        "paystack",
        {
            "event": "charge.failed",
            "data": {
                "reference": "ref_9",
                "status": "failed",
                "customer": {"email": "buyer@example.com"},
                "gateway_response": "Insufficient Funds",
            },
        },
    )

    assert isinstance(event, ChargeFailed)
    assert event.transaction_id == "ref_9"
    assert event.customer_email == "buyer@example.com"
    assert event.reason == "Insufficient Funds"


def test_paystack_unhandled_event():
    event = parse_gateway_event("paystack", {"event": "transfer.success", "data": {}})
    assert event == UnhandledEvent(gateway="paystack", event_name="transfer.success")


def test_paystack_success_without_reference_is_malformed():
    with pytest.raises(MalformedPayloadError):
        parse_gateway_event("paystack", {"event": "charge.success", "data": {"amount": 100}})


def test_paystack_without_event_is_malformed():
    with pytest.raises(MalformedPayloadError):
        parse_gateway_event("paystack", {"data": {"reference": "r"}})


def test_flutterwave_charge_completed_prefers_id():
    event = parse_gateway_event(
        "flutterwave",
        {"event": "charge.completed", "data": {"id": 285959875, "tx_ref": "fd_1", "status": "successful"}},
    )

    assert event == ChargeCompleted(gateway="flutterwave", transaction_id="285959875")


def test_flutterwave_card_transaction_falls_back_to_tx_ref():
    event = parse_gateway_event("flutterwave", {"eventType": "CARD_TRANSACTION", "data": {"txRef": "fd_2"}})
    assert event == ChargeCompleted(gateway="flutterwave", transaction_id="fd_2")


def test_flutterwave_bank_transfer_nested_event():
    event = parse_gateway_event(
        "flutterwave",
        {"event": {"type": "BANK_TRANSFER_TRANSACTION", "id": 77, "status": "successful"}},
    )

    assert isinstance(event, BankTransfer)
    assert event.transaction_id == "77"
    assert event.successful


def test_flutterwave_bank_transfer_flat_event():
    """Test the flat 'event.type' shape and status normalization"""
    event = parse_gateway_event(
        "flutterwave",
        {"event.type": "USSD_TRANSACTION", "id": 78, "status": "PENDING"},
    )

    assert isinstance(event, BankTransfer)
    assert event.status == "pending"
    assert not event.successful


def test_flutterwave_charge_without_id_is_malformed():
    with pytest.raises(MalformedPayloadError):
        parse_gateway_event("flutterwave", {"event": "charge.completed", "data": {"status": "successful"}})


def test_flutterwave_unhandled_event():
    event = parse_gateway_event("flutterwave", {"event": "transfer.completed", "data": {"id": 1}})
    assert event == UnhandledEvent(gateway="flutterwave", event_name="transfer.completed")


def test_unknown_gateway():
    with pytest.raises(UnknownGatewayError):
        parse_gateway_event("stripe", {"event": "charge.success"})


@pytest.mark.parametrize("payload", [None, [], "charge.success", 42])
def test_non_object_payload_is_malformed(payload):
    with pytest.raises(MalformedPayloadError):
        parse_gateway_event("paystack", payload)


def test_invalid_field_types_are_malformed():
    """Test pydantic validation errors surface as MalformedPayloadError"""
    with pytest.raises(MalformedPayloadError):
        parse_gateway_event("paystack", {"event": "charge.success", "data": {"reference": {"nested": True}}})
