"""Notification sinks for alert events"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict
from typing import List

from fakedetector_accounts.domain.models import AlertEvent
from fakedetector_accounts.infrastructure.observability.metrics import notification_failure_counter

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Receives alert events; delivery is fire-and-forget"""

    @abstractmethod
    def emit(self, event: AlertEvent) -> None:
        ...


class LoggingNotificationSink(NotificationSink):
    """Writes alerts to the structured log"""

    def emit(self, event: AlertEvent) -> None:
        logger.warning(
            "Alert: %s",
            event.kind,
            extra={"alert": asdict(event), "severity": event.severity, "subject_id": event.subject_id},
        )


class InMemoryNotificationSink(NotificationSink):
    """
    Buffers alerts in memory.

    Request handlers use one per request as an outbox and hand the drained
    events to a background task after the response; tests read `events`.
    """

    def __init__(self) -> None:
        self.events: List[AlertEvent] = []

    def emit(self, event: AlertEvent) -> None:
        self.events.append(event)

    def drain(self) -> List[AlertEvent]:
        events, self.events = self.events, []
        return events


def safe_emit(sink: NotificationSink, event: AlertEvent) -> None:
    """Emit without letting a broken sink fail the primary operation"""
    try:
        sink.emit(event)
    except Exception:
        notification_failure_counter.inc()
        logger.exception("Failed to emit %s alert for %s", event.kind, event.subject_id)
