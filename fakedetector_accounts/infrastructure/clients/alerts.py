"""Admin alert webhook client with exponential backoff retry logic"""

import asyncio
import logging
from dataclasses import asdict
from typing import Iterable

import httpx

from fakedetector_accounts.config import settings
from fakedetector_accounts.domain.models import AlertEvent
from fakedetector_accounts.infrastructure.observability.metrics import notification_failure_counter

logger = logging.getLogger(__name__)


class AlertWebhookClient:
    """Client for posting alert events to the admin notification webhook"""

    def __init__(
        self,
        webhook_url: str | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url or settings.alert_webhook_url
        self.max_retries = max_retries or settings.alert_webhook_max_retries
        self.backoff_base = settings.alert_webhook_backoff_base if backoff_base is None else backoff_base
        self.transport = transport

    async def send_alert(self, event: AlertEvent) -> None:
        """
        Send one alert with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s, 16s (base * 2^attempt)
        - Retries on 5xx errors and network failures

        Raises the last error once retries are exhausted.
        """
        attempt = 0
        async with httpx.AsyncClient(transport=self.transport) as client:
            while attempt < self.max_retries:
                try:
                    response = await client.post(self.webhook_url, json=asdict(event), timeout=10.0)
                    response.raise_for_status()
                    return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError):
                    attempt += 1

                    if attempt >= self.max_retries:
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)

    async def deliver_all(self, events: Iterable[AlertEvent]) -> int:
        """Background-task entry point: deliver each alert, logging rather than raising failures"""
        delivered = 0
        if not self.webhook_url:
            return delivered
        for event in events:
            try:
                await self.send_alert(event)
                delivered += 1
            except (httpx.HTTPStatusError, httpx.RequestError):
                notification_failure_counter.inc()
                logger.exception("Alert delivery failed for %s", event.kind)
        return delivered
