"""
Sliding-window rate limiter for failed logins and signups.

One active tracking window per (email, kind). Counting is a guarded UPDATE
that refuses to go past the threshold, and only the increment that lands
exactly on the threshold sets the block, so concurrent failures can neither
skip the block nor extend it.
"""

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fakedetector_accounts.config import Settings, settings as default_settings
from fakedetector_accounts.domain.models import (
    AlertEvent,
    AttemptKind,
    AttemptOutcome,
    AttemptStatus,
    BlockStatus,
)
from fakedetector_accounts.domain.security import build_login_alert, classify_severity
from fakedetector_accounts.infrastructure.database.models import LoginAttempt
from fakedetector_accounts.infrastructure.database.repositories import LoginAttemptRepository
from fakedetector_accounts.infrastructure.notifications.sinks import (
    LoggingNotificationSink,
    NotificationSink,
    safe_emit,
)
from fakedetector_accounts.infrastructure.observability.logging import log_login_block
from fakedetector_accounts.infrastructure.observability.metrics import record_failed_attempt
from fakedetector_accounts.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 200
WINDOW_CREATE_ATTEMPTS = 3


def normalize_email(email: str) -> str:
    return email.strip().lower()


class SecurityRateLimiter:
    """Counts failed authentication attempts per email and blocks on threshold"""

    def __init__(
        self,
        db: Session,
        notifier: NotificationSink | None = None,
        settings: Settings | None = None,
        clock: Callable = utcnow,
        alert_kinds=(AttemptKind.LOGIN,),
    ):
        config = settings or default_settings
        self.db = db
        self.attempts = LoginAttemptRepository(db)
        self.notifier = notifier or LoggingNotificationSink()
        self.threshold = config.login_max_failed_attempts
        self.window = timedelta(minutes=config.login_window_minutes)
        self.block_duration = timedelta(minutes=config.login_block_minutes)
        self.retention = timedelta(hours=config.login_attempt_retention_hours)
        self.alert_cooldown = timedelta(seconds=config.already_blocked_alert_cooldown_seconds)
        self.alert_kinds = frozenset(alert_kinds)
        self.clock = clock

    # Recording

    def record_failed_login(
        self, email: str, ip_address: Optional[str] = None, user_agent: Optional[str] = None
    ) -> AttemptOutcome:
        return self.record_failed_attempt(email, AttemptKind.LOGIN, ip_address, user_agent)

    def record_failed_signup(
        self, email: str, ip_address: Optional[str] = None, user_agent: Optional[str] = None
    ) -> AttemptOutcome:
        return self.record_failed_attempt(email, AttemptKind.SIGNUP, ip_address, user_agent)

    def record_failed_attempt(
        self,
        email: str,
        kind: AttemptKind = AttemptKind.LOGIN,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AttemptOutcome:
        """
        Count one failure for `email`.

        Flow:
        1. Retire the active window if it expired or its block lapsed
        2. Open a window (count=1) if none is active, or
        3. Increment the active one, guarded by threshold/block/expiry
        4. If the guard refused, the window is blocked: report it without counting
        5. The increment that reaches the threshold sets blocked_until

        Alerts are emitted after commit.
        """
        email = normalize_email(email)
        kind = AttemptKind(kind)
        now = self.clock()
        window_start = now - self.window

        for _ in range(WINDOW_CREATE_ATTEMPTS):
            self.attempts.supersede_expired(email, kind, window_start, now)
            attempt = self.attempts.find_active_window(email, kind)

            if attempt is None:
                try:
                    attempt = self.attempts.create_window(email, kind, ip_address, user_agent, now)
                except IntegrityError:
                    # Another request opened the window first
                    self.db.rollback()
                    continue
                return self._counted(attempt, kind, ip_address, user_agent, now)

            if self.attempts.increment(attempt.id, self.threshold, window_start, ip_address, user_agent, now):
                return self._counted(self.attempts.get(attempt.id), kind, ip_address, user_agent, now)

            attempt = self.attempts.get(attempt.id)
            if attempt.blocked_until is not None or attempt.attempt_count >= self.threshold:
                return self._already_blocked(attempt, kind, ip_address, user_agent, now)

        # Lost every race to open a window; the winner's window now holds this email
        self.db.rollback()
        attempt = self.attempts.find_active_window(email, kind)
        if attempt is None:
            raise RuntimeError(f"Could not open a tracking window for {kind.value}")
        return AttemptOutcome(
            status=AttemptStatus.TRACKING,
            email=email,
            attempt_count=attempt.attempt_count,
            blocked_until=attempt.blocked_until,
        )

    def _counted(
        self,
        attempt: LoginAttempt,
        kind: AttemptKind,
        ip_address: Optional[str],
        user_agent: Optional[str],
        now,
    ) -> AttemptOutcome:
        newly_blocked = attempt.attempt_count >= self.threshold and self.attempts.set_block(
            attempt.id, now + self.block_duration
        )
        self.db.commit()

        if not newly_blocked:
            record_failed_attempt(kind.value, AttemptStatus.TRACKING.value)
            return AttemptOutcome(
                status=AttemptStatus.TRACKING,
                email=attempt.email,
                attempt_count=attempt.attempt_count,
            )

        blocked_until = now + self.block_duration
        record_failed_attempt(kind.value, AttemptStatus.NEWLY_BLOCKED.value)
        log_login_block(kind.value, attempt.email, attempt.attempt_count, blocked_until)
        if kind in self.alert_kinds:
            self._alert(
                kind,
                attempt.email,
                classify_severity(attempt.attempt_count),
                attempt.attempt_count,
                ip_address,
                user_agent,
                status=AttemptStatus.NEWLY_BLOCKED.value,
                blocked_until=blocked_until.isoformat(),
            )
        return AttemptOutcome(
            status=AttemptStatus.NEWLY_BLOCKED,
            email=attempt.email,
            attempt_count=attempt.attempt_count,
            blocked_until=blocked_until,
        )

    def _already_blocked(
        self,
        attempt: LoginAttempt,
        kind: AttemptKind,
        ip_address: Optional[str],
        user_agent: Optional[str],
        now,
    ) -> AttemptOutcome:
        should_alert = kind in self.alert_kinds and self.attempts.claim_alert(attempt.id, now, self.alert_cooldown)
        self.db.commit()

        record_failed_attempt(kind.value, AttemptStatus.ALREADY_BLOCKED.value)
        logger.info(
            "Attempt while blocked",
            extra={"kind": kind.value, "email": attempt.email, "attempt_count": attempt.attempt_count},
        )
        if should_alert:
            self._alert(
                kind,
                attempt.email,
                "critical",
                attempt.attempt_count,
                ip_address,
                user_agent,
                status=AttemptStatus.ALREADY_BLOCKED.value,
                blocked_until=attempt.blocked_until.isoformat() if attempt.blocked_until else None,
            )
        return AttemptOutcome(
            status=AttemptStatus.ALREADY_BLOCKED,
            email=attempt.email,
            attempt_count=attempt.attempt_count,
            blocked_until=attempt.blocked_until,
        )

    def _alert(self, kind, email, severity, attempt_count, ip_address, user_agent, status, **details) -> AlertEvent:
        emails_from_ip = 1
        if ip_address:
            since = self.clock() - self.window
            emails_from_ip = max(self.attempts.count_emails_from_ip(ip_address, kind, since), 1)
        event = build_login_alert(
            kind, email, severity, attempt_count, ip_address, user_agent, status, emails_from_ip, **details
        )
        safe_emit(self.notifier, event)
        return event

    # Queries

    def is_login_blocked(self, email: str) -> BlockStatus:
        return self.is_blocked(email, AttemptKind.LOGIN)

    def is_signup_blocked(self, email: str) -> BlockStatus:
        return self.is_blocked(email, AttemptKind.SIGNUP)

    def is_blocked(self, email: str, kind: AttemptKind = AttemptKind.LOGIN) -> BlockStatus:
        """Read-only; safe to call before credentials are checked"""
        now = self.clock()
        attempt = self.attempts.find_active_window(normalize_email(email), AttemptKind(kind))
        if attempt is None:
            return BlockStatus(blocked=False, remaining_attempts=self.threshold)

        if attempt.blocked_until is not None:
            if attempt.blocked_until > now:
                return BlockStatus(blocked=True, remaining_attempts=0, blocked_until=attempt.blocked_until)
            return BlockStatus(blocked=False, remaining_attempts=self.threshold)

        if attempt.last_attempt < now - self.window:
            return BlockStatus(blocked=False, remaining_attempts=self.threshold)
        return BlockStatus(blocked=False, remaining_attempts=max(self.threshold - attempt.attempt_count, 0))

    # Maintenance and admin

    def cleanup_old_records(self) -> int:
        """Mark windows idle past the retention horizon inactive; rows are kept for audit"""
        cutoff = self.clock() - self.retention
        swept = self.attempts.deactivate_older_than(cutoff)
        self.db.commit()
        logger.info("Login attempt cleanup", extra={"deactivated": swept, "cutoff": cutoff.isoformat()})
        return swept

    def get_security_stats(self, hours: int = 24) -> Dict[str, Any]:
        now = self.clock()
        since = now - timedelta(hours=hours)
        blocked_emails = self.attempts.currently_blocked_emails(now)
        return {
            "period_hours": hours,
            "failed_login_windows": self.attempts.count_windows_since(since, AttemptKind.LOGIN),
            "failed_signup_windows": self.attempts.count_windows_since(since, AttemptKind.SIGNUP),
            "blocks_triggered": self.attempts.count_blocks_since(since),
            "currently_blocked": len(blocked_emails),
            "currently_blocked_emails": blocked_emails,
        }

    def list_recent_attempts(self, kind: Optional[AttemptKind] = None, limit: int = 50) -> List[LoginAttempt]:
        limit = min(max(limit, 1), MAX_LIST_LIMIT)
        return self.attempts.list_recent(AttemptKind(kind) if kind else None, limit)
