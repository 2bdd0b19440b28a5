"""Flutterwave transaction verification client"""

from typing import Any, Mapping

from fakedetector_accounts.config import settings
from fakedetector_accounts.domain.events import FLUTTERWAVE
from fakedetector_accounts.domain.models import GatewayVerification
from fakedetector_accounts.infrastructure.clients.gateway import (
    GatewayClient,
    as_mapping,
    major_to_minor,
    parse_points,
)


class FlutterwaveClient(GatewayClient):
    """Verifies Flutterwave transactions via GET /v3/transactions/{id}/verify"""

    name = FLUTTERWAVE

    def __init__(self, base_url: str | None = None, secret_key: str | None = None, timeout: float | None = None, transport=None):
        super().__init__(
            base_url=base_url or settings.flutterwave_api_base,
            secret_key=secret_key if secret_key is not None else settings.flutterwave_secret_key,
            timeout=timeout or settings.gateway_timeout_seconds,
            transport=transport,
        )

    def verify_path(self, transaction_id: str) -> str:
        return f"/v3/transactions/{transaction_id}/verify"

    def parse_verification(self, transaction_id: str, body: Mapping[str, Any]) -> GatewayVerification:
        data = body.get("data")
        if body.get("status") != "success" or not isinstance(data, Mapping):
            return GatewayVerification(
                verified=False,
                transaction_id=transaction_id,
                error=str(body.get("message") or "Payment verification failed"),
            )

        customer = as_mapping(data.get("customer"))
        if data.get("status") != "successful":
            return GatewayVerification(
                verified=False,
                transaction_id=transaction_id,
                customer_email=customer.get("email"),
                error=str(data.get("processor_response") or f"Transaction status is {data.get('status')}"),
            )

        meta = as_mapping(data.get("meta"))
        return GatewayVerification(
            verified=True,
            transaction_id=transaction_id,
            amount_minor=major_to_minor(data["amount"]),  # Flutterwave reports naira
            currency=str(data.get("currency") or "NGN"),
            customer_email=customer.get("email"),
            purchased_tier=meta.get("planId"),
            points_count=parse_points(meta.get("pointsCount")),
        )
