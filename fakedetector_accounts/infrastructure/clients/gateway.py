"""Shared plumbing for payment gateway verification clients"""

import json
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import httpx

from fakedetector_accounts.domain.exceptions import GatewayUnavailableError
from fakedetector_accounts.domain.models import GatewayVerification
from fakedetector_accounts.infrastructure.observability.metrics import (
    gateway_unavailable_counter,
    gateway_verify_latency_histogram,
)


class GatewayClient(ABC):
    """
    Base client for a gateway's transaction-verification API.

    Subclasses build the request path and interpret the response body.
    Transport problems (timeout, connection error, 5xx, unreadable body) raise
    GatewayUnavailableError; a gateway that answers but does not confirm a
    successful charge yields GatewayVerification(verified=False).
    """

    name = "gateway"

    def __init__(
        self,
        base_url: str,
        secret_key: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key
        self.timeout = timeout
        self.transport = transport

    @abstractmethod
    def verify_path(self, transaction_id: str) -> str:
        ...

    @abstractmethod
    def parse_verification(self, transaction_id: str, body: Mapping[str, Any]) -> GatewayVerification:
        ...

    async def verify_transaction(self, transaction_id: str) -> GatewayVerification:
        """
        Ask the gateway what really happened to `transaction_id`.

        Raises:
            GatewayUnavailableError: On timeout, network errors, 5xx, or invalid response
        """
        url = f"{self.base_url}{self.verify_path(quote(str(transaction_id), safe=''))}"
        headers = {"Authorization": f"Bearer {self.secret_key}"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                with gateway_verify_latency_histogram.labels(gateway=self.name).time():
                    response = await client.get(url, headers=headers)

                if response.status_code >= 500:
                    raise GatewayUnavailableError(f"{self.name} verify API error: {response.status_code}")
                if response.status_code >= 400:
                    return GatewayVerification(
                        verified=False,
                        transaction_id=str(transaction_id),
                        error=_error_message(response) or f"{self.name} rejected verification ({response.status_code})",
                    )

                return self.parse_verification(str(transaction_id), response.json())

            except httpx.TimeoutException as e:
                gateway_unavailable_counter.labels(gateway=self.name).inc()
                raise GatewayUnavailableError(f"{self.name} verify API timeout after {self.timeout}s") from e
            except httpx.RequestError as e:
                gateway_unavailable_counter.labels(gateway=self.name).inc()
                raise GatewayUnavailableError(f"{self.name} verify API unreachable: {e}") from e
            except GatewayUnavailableError:
                gateway_unavailable_counter.labels(gateway=self.name).inc()
                raise
            except (KeyError, ValueError, TypeError) as e:
                gateway_unavailable_counter.labels(gateway=self.name).inc()
                raise GatewayUnavailableError(f"Invalid verification data from {self.name}: {e}") from e


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, Mapping) and body.get("message"):
        return str(body["message"])
    return None


def as_mapping(value: Any) -> Dict[str, Any]:
    """Gateways send metadata as an object, an empty string, or JSON text; normalize to a dict"""
    if isinstance(value, str) and value.strip().startswith("{"):
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    return dict(value) if isinstance(value, Mapping) else {}


def parse_points(value: Any) -> Optional[int]:
    try:
        points = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return points if points > 0 else None


def major_to_minor(amount: Any) -> int:
    """Naira (possibly fractional) to kobo"""
    try:
        return int((Decimal(str(amount)) * 100).to_integral_value())
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e
