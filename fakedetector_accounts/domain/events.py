"""
Gateway webhook parsing.

Raw webhook JSON is validated here and turned into one of a small set of typed
events. The crediting pipeline only ever branches on these types, never on raw
payload shape. Success events carry only the transaction id; amount, status,
customer and tier come from the gateway's verify API.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from fakedetector_accounts.domain.exceptions import MalformedPayloadError, UnknownGatewayError

PAYSTACK = "paystack"
FLUTTERWAVE = "flutterwave"

FLUTTERWAVE_BANK_TRANSFER_TYPES = frozenset(
    {
        "BANK_TRANSFER_TRANSACTION",
        "ACCOUNT_TRANSACTION",
        "VOICE_TRANSACTION",
        "SMS_TRANSACTION",
        "BANK_TRANSFER_RECONCILED",
        "USSD_TRANSACTION",
        "WIRE_TRANSACTION",
    }
)


@dataclass(frozen=True)
class ChargeCompleted:
    """Gateway claims a charge completed; still has to be verified"""

    gateway: str
    transaction_id: str


@dataclass(frozen=True)
class ChargeFailed:
    """Gateway claims a charge failed"""

    gateway: str
    transaction_id: str
    customer_email: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class BankTransfer:
    """Bank transfer / mobile money / USSD notification (Flutterwave)"""

    gateway: str
    transaction_id: str
    status: str
    event_type: str

    @property
    def successful(self) -> bool:
        return self.status == "successful"


@dataclass(frozen=True)
class UnhandledEvent:
    """Event type this service does not act on; acknowledged and dropped"""

    gateway: str
    event_name: str


GatewayEvent = Union[ChargeCompleted, ChargeFailed, BankTransfer, UnhandledEvent]


class _Customer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None


class _PaystackCharge(BaseModel):
    model_config = ConfigDict(extra="ignore")

    reference: str
    status: Optional[str] = None
    customer: Optional[_Customer] = None
    gateway_response: Optional[Any] = None


class _FlutterwaveCharge(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[Union[int, str]] = None
    tx_ref: Optional[str] = None
    txRef: Optional[str] = None
    status: Optional[str] = None
    customer: Optional[_Customer] = None

    def transaction_id(self) -> str:
        value = self.id if self.id not in (None, "") else (self.tx_ref or self.txRef)
        if value in (None, ""):
            raise MalformedPayloadError("Flutterwave event has no transaction id")
        return str(value)


def _failure_reason(gateway_response: Any) -> Optional[str]:
    if isinstance(gateway_response, Mapping):
        message = gateway_response.get("message")
        return str(message) if message else None
    return str(gateway_response) if gateway_response else None


def _parse_paystack(payload: Mapping[str, Any]) -> GatewayEvent:
    event = payload.get("event")
    if not isinstance(event, str) or not event:
        raise MalformedPayloadError("Paystack payload has no event name")

    if event not in ("charge.success", "charge.failed"):
        return UnhandledEvent(gateway=PAYSTACK, event_name=event)

    data = payload.get("data")
    if not isinstance(data, Mapping):
        raise MalformedPayloadError(f"Paystack {event} payload has no data object")
    charge = _PaystackCharge.model_validate(data)
    if not charge.reference.strip():
        raise MalformedPayloadError("Paystack charge has an empty reference")

    if event == "charge.success":
        return ChargeCompleted(gateway=PAYSTACK, transaction_id=charge.reference)

    return ChargeFailed(
        gateway=PAYSTACK,
        transaction_id=charge.reference,
        customer_email=charge.customer.email if charge.customer else None,
        reason=_failure_reason(charge.gateway_response) or f"Charge {charge.status or 'failed'}",
    )


def _parse_flutterwave(payload: Mapping[str, Any]) -> GatewayEvent:
    event = payload.get("event")

    if event == "charge.completed" or payload.get("eventType") == "CARD_TRANSACTION":
        data = payload.get("data")
        if not isinstance(data, Mapping):
            raise MalformedPayloadError("Flutterwave charge payload has no data object")
        charge = _FlutterwaveCharge.model_validate(data)
        return ChargeCompleted(gateway=FLUTTERWAVE, transaction_id=charge.transaction_id())

    # Bank transfers come in two shapes: {"event": {"type": ...}, ...} or a flat
    # {"event.type": ...} body with the transaction fields at the top level.
    if isinstance(event, Mapping):
        event_type = event.get("type")
        body: Mapping[str, Any] = event
    else:
        event_type = payload.get("event.type")
        body = payload

    if event_type in FLUTTERWAVE_BANK_TRANSFER_TYPES:
        transfer = _FlutterwaveCharge.model_validate(body)
        return BankTransfer(
            gateway=FLUTTERWAVE,
            transaction_id=transfer.transaction_id(),
            status=(transfer.status or "").lower(),
            event_type=event_type,
        )

    name = event_type or event or payload.get("eventType")
    if not name:
        raise MalformedPayloadError("Flutterwave payload has no event name")
    return UnhandledEvent(gateway=FLUTTERWAVE, event_name=str(name))


_PARSERS: Dict[str, Callable[[Mapping[str, Any]], GatewayEvent]] = {
    PAYSTACK: _parse_paystack,
    FLUTTERWAVE: _parse_flutterwave,
}


def parse_gateway_event(gateway: str, payload: Any) -> GatewayEvent:
    """
    Validate a raw webhook body and classify it.

    Raises:
        UnknownGatewayError: gateway name has no parser
        MalformedPayloadError: body is not an object or lacks required fields
    """
    parser = _PARSERS.get(gateway)
    if parser is None:
        raise UnknownGatewayError(f"Unknown payment gateway: {gateway}")
    if not isinstance(payload, Mapping):
        raise MalformedPayloadError("Webhook payload must be a JSON object")

    try:
        return parser(payload)
    except ValidationError as e:
        raise MalformedPayloadError(f"Invalid {gateway} payload: {e.error_count()} validation error(s)") from e
