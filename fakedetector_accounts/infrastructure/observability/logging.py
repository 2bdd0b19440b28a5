"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from fakedetector_accounts.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_consumption(user_id: str, plan_tier: str, tier_used: Optional[str], remaining: int) -> None:
    """Log a consume outcome; running out of points is a business outcome, not an error"""
    logging.getLogger("fakedetector_accounts.ledger").info(
        "Point consumed" if tier_used else "No points available",
        extra={
            "user_id": user_id,
            "step": "consume",
            "plan_tier": plan_tier,
            "tier_used": tier_used,
            "points_remaining": remaining,
        },
    )


def log_payment_outcome(
    gateway: str,
    transaction_id: Optional[str],
    outcome: str,
    user_id: Optional[str] = None,
    points: int = 0,
    reason: Optional[str] = None,
) -> None:
    """Log how a gateway event was resolved"""
    logging.getLogger("fakedetector_accounts.payments").info(
        "Payment event handled",
        extra={
            "gateway": gateway,
            "transaction_id": transaction_id,
            "step": "payment_event",
            "outcome": outcome,
            "user_id": user_id,
            "points": points,
            "reason": reason,
        },
    )


def log_login_block(kind: str, email: str, attempt_count: int, blocked_until: Optional[datetime]) -> None:
    logging.getLogger("fakedetector_accounts.security").warning(
        "Authentication blocked",
        extra={
            "kind": kind,
            "email": email,
            "step": "block",
            "attempt_count": attempt_count,
            "blocked_until": blocked_until.isoformat() if blocked_until else None,
        },
    )
