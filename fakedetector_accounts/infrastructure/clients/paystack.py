"""Paystack transaction verification client"""

from typing import Any, Mapping, Optional

from fakedetector_accounts.config import settings
from fakedetector_accounts.domain.events import PAYSTACK
from fakedetector_accounts.domain.models import GatewayVerification
from fakedetector_accounts.infrastructure.clients.gateway import GatewayClient, as_mapping, parse_points


class PaystackClient(GatewayClient):
    """Verifies Paystack references via GET /transaction/verify/{reference}"""

    name = PAYSTACK

    def __init__(self, base_url: str | None = None, secret_key: str | None = None, timeout: float | None = None, transport=None):
        super().__init__(
            base_url=base_url or settings.paystack_api_base,
            secret_key=secret_key if secret_key is not None else settings.paystack_secret_key,
            timeout=timeout or settings.gateway_timeout_seconds,
            transport=transport,
        )

    def verify_path(self, transaction_id: str) -> str:
        return f"/transaction/verify/{transaction_id}"

    def parse_verification(self, transaction_id: str, body: Mapping[str, Any]) -> GatewayVerification:
        data = body.get("data")
        if not body.get("status") or not isinstance(data, Mapping):
            return GatewayVerification(
                verified=False,
                transaction_id=transaction_id,
                error=str(body.get("message") or "Payment verification failed"),
            )

        customer = as_mapping(data.get("customer"))
        if data.get("status") != "success":
            return GatewayVerification(
                verified=False,
                transaction_id=transaction_id,
                customer_email=customer.get("email"),
                error=str(data.get("gateway_response") or f"Transaction status is {data.get('status')}"),
            )

        metadata = as_mapping(data.get("metadata"))
        return GatewayVerification(
            verified=True,
            transaction_id=str(data.get("reference") or transaction_id),
            amount_minor=int(data["amount"]),  # Paystack already reports kobo
            currency=str(data.get("currency") or "NGN"),
            customer_email=customer.get("email"),
            purchased_tier=metadata.get("planId") or _custom_field(metadata, "plan_type"),
            points_count=parse_points(metadata.get("pointsCount")) or parse_points(_custom_field(metadata, "points_count")),
        )


def _custom_field(metadata: Mapping[str, Any], variable_name: str) -> Optional[Any]:
    fields = metadata.get("custom_fields")
    if not isinstance(fields, list):
        return None
    for item in fields:
        if isinstance(item, Mapping) and item.get("variable_name") == variable_name:
            return item.get("value")
    return None
