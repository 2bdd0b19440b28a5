"""Dependency injection for FastAPI endpoints"""

from typing import Dict

from fastapi import BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from fakedetector_accounts.config import settings
from fakedetector_accounts.domain.events import FLUTTERWAVE, PAYSTACK
from fakedetector_accounts.domain.pricing import PlanPricing
from fakedetector_accounts.infrastructure.clients.alerts import AlertWebhookClient
from fakedetector_accounts.infrastructure.clients.flutterwave import FlutterwaveClient
from fakedetector_accounts.infrastructure.clients.gateway import GatewayClient
from fakedetector_accounts.infrastructure.clients.paystack import PaystackClient
from fakedetector_accounts.infrastructure.database.session import get_db
from fakedetector_accounts.infrastructure.notifications.sinks import InMemoryNotificationSink, LoggingNotificationSink
from fakedetector_accounts.services.payment_crediting import PaymentCreditingPipeline
from fakedetector_accounts.services.point_ledger import PointLedger
from fakedetector_accounts.services.rate_limiter import SecurityRateLimiter


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_gateways() -> Dict[str, GatewayClient]:
    """Provide verification clients keyed by gateway name"""
    return {
        PAYSTACK: PaystackClient(),
        FLUTTERWAVE: FlutterwaveClient(),
    }


def get_pricing() -> PlanPricing:
    return PlanPricing.from_settings(settings)


def get_alert_client() -> AlertWebhookClient:
    """Provide admin alert webhook client instance"""
    return AlertWebhookClient()


def get_outbox() -> InMemoryNotificationSink:
    """Per-request alert buffer, flushed to a background task after the response"""
    return InMemoryNotificationSink()


def get_point_ledger(db: Session = Depends(get_db)) -> PointLedger:
    return PointLedger(db, settings)


def get_rate_limiter(
    db: Session = Depends(get_db),
    outbox: InMemoryNotificationSink = Depends(get_outbox),
) -> SecurityRateLimiter:
    return SecurityRateLimiter(db, notifier=outbox, settings=settings)


def get_crediting_pipeline(
    db: Session = Depends(get_db),
    outbox: InMemoryNotificationSink = Depends(get_outbox),
    gateways: Dict[str, GatewayClient] = Depends(get_gateways),
    pricing: PlanPricing = Depends(get_pricing),
) -> PaymentCreditingPipeline:
    return PaymentCreditingPipeline(db, gateways, notifier=outbox, pricing=pricing, ledger=PointLedger(db, settings))


def dispatch_alerts(
    background_tasks: BackgroundTasks,
    outbox: InMemoryNotificationSink,
    alert_client: AlertWebhookClient,
) -> int:
    """Log buffered alerts now and post them to the alert webhook after the response"""
    events = outbox.drain()
    log_sink = LoggingNotificationSink()
    for event in events:
        log_sink.emit(event)
    if events and alert_client.webhook_url:
        background_tasks.add_task(alert_client.deliver_all, events)
    return len(events)
