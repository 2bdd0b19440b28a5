"""POST /v1/webhooks/{gateway} - payment gateway webhook receiver"""

import logging
from json import JSONDecodeError

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from fakedetector_accounts.api.dependencies import (
    dispatch_alerts,
    get_alert_client,
    get_crediting_pipeline,
    get_outbox,
    get_request_id,
)
from fakedetector_accounts.api.v1.schemas import WebhookResponse
from fakedetector_accounts.domain.exceptions import (
    GatewayUnavailableError,
    InvalidTierError,
    MalformedPayloadError,
    UnknownGatewayError,
)
from fakedetector_accounts.infrastructure.clients.alerts import AlertWebhookClient
from fakedetector_accounts.infrastructure.notifications.sinks import InMemoryNotificationSink
from fakedetector_accounts.services.payment_crediting import PaymentCreditingPipeline

router = APIRouter()


@router.post("/webhooks/{gateway}", response_model=WebhookResponse)
async def receive_webhook(
    gateway: str,
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: PaymentCreditingPipeline = Depends(get_crediting_pipeline),
    outbox: InMemoryNotificationSink = Depends(get_outbox),
    alert_client: AlertWebhookClient = Depends(get_alert_client),
):
    """
    Credit a verified gateway payment exactly once.

    Every definitive answer returns 200 so the gateway stops redelivering;
    only a gateway outage (503) asks for redelivery.
    """
    request_id = get_request_id(request)

    try:
        payload = await request.json()
    except (JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Webhook body must be JSON")

    try:
        outcome = await pipeline.handle_external_event(gateway.lower(), payload)

    except UnknownGatewayError as e:
        raise HTTPException(status_code=404, detail=str(e))

    except MalformedPayloadError as e:
        logging.warning(f"Malformed {gateway} webhook: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail=str(e))

    except InvalidTierError as e:
        logging.warning(f"Invalid tier in {gateway} payment: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except GatewayUnavailableError as e:
        logging.error(f"Gateway verification unavailable: {e}", extra={"request_id": request_id})
        dispatch_alerts(background_tasks, outbox, alert_client)
        return JSONResponse(
            status_code=503,
            content={"detail": "Payment gateway unavailable"},
            background=background_tasks,
        )

    dispatch_alerts(background_tasks, outbox, alert_client)
    return WebhookResponse(
        status=outcome.status.value,
        transaction_id=outcome.transaction_id,
        tier=outcome.tier,
        points=outcome.points,
        amount_minor=outcome.amount_minor,
        reason=outcome.reason,
    )
