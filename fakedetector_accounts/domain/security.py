"""Alert classification for authentication abuse: severity, threat score, attack pattern"""

from typing import Optional

from fakedetector_accounts.domain.models import AlertEvent, AttemptKind, AttemptStatus

SEVERITY_BASE_SCORE = {
    "low": 20,
    "medium": 40,
    "high": 70,
    "critical": 95,
}


def classify_severity(attempt_count: int) -> str:
    """
    Map a failed-attempt count to alert urgency.

    Only picks how loudly to alert. The block decision itself is made
    by the rate limiter's threshold, never by this function.
    """
    if attempt_count >= 10:
        return "critical"
    if attempt_count >= 5:
        return "high"
    return "medium"


def calculate_threat_score(severity: str, attempt_count: int) -> int:
    """0-100 score: severity baseline plus 5 per attempt, clamped"""
    score = SEVERITY_BASE_SCORE.get(severity, 50) + attempt_count * 5
    return min(max(score, 0), 100)


# Emails failing from one IP within a window before it reads as credential stuffing
CREDENTIAL_STUFFING_EMAILS = 3


def detect_attack_pattern(status: str, emails_from_ip: int = 1) -> Optional[str]:
    """
    Name the abuse pattern behind a blocked email.

    One IP failing against several emails in the same window wins over the
    per-email patterns.
    """
    if emails_from_ip >= CREDENTIAL_STUFFING_EMAILS:
        return "credential_stuffing"
    if status == AttemptStatus.ALREADY_BLOCKED.value:
        return "persistent_brute_force"
    if status == AttemptStatus.NEWLY_BLOCKED.value:
        return "brute_force_attack"
    return None


def build_login_alert(
    kind: AttemptKind,
    email: str,
    severity: str,
    attempt_count: int,
    ip_address: Optional[str],
    user_agent: Optional[str],
    status: str,
    emails_from_ip: int = 1,
    **details,
) -> AlertEvent:
    """Assemble the security alert emitted when an email is (or stays) blocked"""
    return AlertEvent(
        kind=f"failed_{kind.value}",
        severity=severity,
        subject_id=email,
        details={
            "attempt_count": attempt_count,
            "ip_address": ip_address,
            "user_agent": user_agent,
            "status": status,
            "threat_score": calculate_threat_score(severity, attempt_count),
            "pattern_id": detect_attack_pattern(status, emails_from_ip),
            "emails_from_ip": emails_from_ip,
            **details,
        },
    )
