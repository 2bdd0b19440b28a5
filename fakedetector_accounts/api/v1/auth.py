"""/v1/auth - failed authentication tracking and block status"""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from fakedetector_accounts.api.dependencies import (
    dispatch_alerts,
    get_alert_client,
    get_outbox,
    get_rate_limiter,
)
from fakedetector_accounts.api.v1.schemas import (
    AttemptItem,
    BlockStatusResponse,
    FailedAttemptRequest,
    FailedAttemptResponse,
    SecurityStatsResponse,
)
from fakedetector_accounts.domain.models import AttemptKind, AttemptStatus
from fakedetector_accounts.infrastructure.clients.alerts import AlertWebhookClient
from fakedetector_accounts.infrastructure.notifications.sinks import InMemoryNotificationSink
from fakedetector_accounts.services.rate_limiter import SecurityRateLimiter, normalize_email

router = APIRouter()


@router.post("/auth/failed-attempts", response_model=FailedAttemptResponse)
def record_failed_attempt(
    request_body: FailedAttemptRequest,
    background_tasks: BackgroundTasks,
    limiter: SecurityRateLimiter = Depends(get_rate_limiter),
    outbox: InMemoryNotificationSink = Depends(get_outbox),
    alert_client: AlertWebhookClient = Depends(get_alert_client),
):
    """Called by the authentication path after credentials are rejected"""
    outcome = limiter.record_failed_attempt(
        request_body.email,
        request_body.kind,
        ip_address=request_body.ip_address,
        user_agent=request_body.user_agent,
    )
    dispatch_alerts(background_tasks, outbox, alert_client)

    return FailedAttemptResponse(
        status=outcome.status.value,
        attempt_count=outcome.attempt_count,
        blocked=outcome.status is not AttemptStatus.TRACKING,
        blocked_until=outcome.blocked_until,
    )


@router.get("/auth/status", response_model=BlockStatusResponse)
def get_block_status(
    email: str = Query(..., min_length=3, description="Email about to authenticate"),
    kind: AttemptKind = Query(AttemptKind.LOGIN),
    limiter: SecurityRateLimiter = Depends(get_rate_limiter),
):
    """
    Check before verifying credentials.

    A blocked email must be answered with a generic "too many attempts"
    without consulting the credential store.
    """
    status = limiter.is_blocked(email, kind)
    return BlockStatusResponse(
        email=normalize_email(email),
        kind=kind,
        blocked=status.blocked,
        remaining_attempts=status.remaining_attempts,
        blocked_until=status.blocked_until,
    )


@router.get("/auth/stats", response_model=SecurityStatsResponse)
def get_security_stats(
    hours: int = Query(24, gt=0, le=24 * 30),
    limiter: SecurityRateLimiter = Depends(get_rate_limiter),
):
    return SecurityStatsResponse(**limiter.get_security_stats(hours))


@router.get("/auth/attempts", response_model=List[AttemptItem])
def list_recent_attempts(
    kind: Optional[AttemptKind] = Query(None),
    limit: int = Query(50, gt=0, le=200),
    limiter: SecurityRateLimiter = Depends(get_rate_limiter),
):
    return [
        AttemptItem(
            email=a.email,
            kind=a.kind,
            attempt_count=a.attempt_count,
            ip_address=a.ip_address,
            first_attempt=a.first_attempt,
            last_attempt=a.last_attempt,
            blocked_until=a.blocked_until,
            is_active=a.is_active,
        )
        for a in limiter.list_recent_attempts(kind, limit)
    ]
