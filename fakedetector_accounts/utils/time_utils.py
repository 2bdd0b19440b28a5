"""Time helpers; all persisted timestamps are naive UTC"""

from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current UTC time without tzinfo, matching what the database round-trips"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today(now: datetime | None = None) -> date:
    return (now or utcnow()).date()


def next_utc_midnight(now: datetime | None = None) -> datetime:
    """Start of the following UTC day"""
    current = now or utcnow()
    return datetime.combine(current.date() + timedelta(days=1), datetime.min.time())
