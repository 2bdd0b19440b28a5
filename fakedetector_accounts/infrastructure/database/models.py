"""SQLAlchemy ORM models for accounts, point ledgers, payments and login attempts"""

import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

from fakedetector_accounts.utils.time_utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class Account(Base):
    """Registered user; email is stored lower-case"""

    __tablename__ = "account"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(320), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    ledger = relationship("AccountLedger", back_populates="account", uselist=False)


class AccountLedger(Base):
    """Per-account point balances; aggregate_balance mirrors the sum of the four tiers"""

    __tablename__ = "account_ledger"
    __table_args__ = (
        CheckConstraint("free_points >= 0", name="ck_ledger_free_non_negative"),
        CheckConstraint("basic_points >= 0", name="ck_ledger_basic_non_negative"),
        CheckConstraint("standard_points >= 0", name="ck_ledger_standard_non_negative"),
        CheckConstraint("business_points >= 0", name="ck_ledger_business_non_negative"),
    )

    user_id = Column(String(36), ForeignKey("account.id", ondelete="CASCADE"), primary_key=True)
    plan_tier = Column(String(16), nullable=False, default="free")
    free_points = Column(Integer, nullable=False, default=0)
    basic_points = Column(Integer, nullable=False, default=0)
    standard_points = Column(Integer, nullable=False, default=0)
    business_points = Column(Integer, nullable=False, default=0)
    aggregate_balance = Column(Integer, nullable=False, default=0)
    daily_points_last_given = Column(Date, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    account = relationship("Account", back_populates="ledger")


class PaymentRecord(Base):
    """One row per external transaction id; the idempotency key for crediting"""

    __tablename__ = "payment_record"

    id = Column(String(36), primary_key=True, default=_uuid)
    transaction_id = Column(String(128), nullable=False, unique=True)
    user_id = Column(String(36), ForeignKey("account.id"), nullable=True, index=True)
    gateway = Column(String(32), nullable=False)
    amount_minor = Column(BigInteger, nullable=False, default=0)
    currency = Column(String(8), nullable=False, default="NGN")
    status = Column(String(16), nullable=False, default="pending")
    points_purchased = Column(Integer, nullable=True)
    plan_tier_credited = Column(String(16), nullable=True)
    failure_reason = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class LoginAttempt(Base):
    """Sliding tracking window of failed authentication attempts for one email"""

    __tablename__ = "login_attempt"
    __table_args__ = (
        # At most one active window per email and kind
        Index(
            "uq_login_attempt_active_window",
            "email",
            "kind",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_login_attempt_last_attempt", "last_attempt"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(320), nullable=False, index=True)
    kind = Column(String(16), nullable=False, default="login")
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    attempt_count = Column(Integer, nullable=False, default=1)
    first_attempt = Column(DateTime, nullable=False)
    last_attempt = Column(DateTime, nullable=False)
    blocked_until = Column(DateTime, nullable=True)
    last_alert_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class RewardLog(Base):
    """Audit trail of points granted outside purchases (ad-watch rewards)"""

    __tablename__ = "reward_log"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("account.id", ondelete="CASCADE"), nullable=False, index=True)
    reward_type = Column(String(32), nullable=False)
    points_granted = Column(Integer, nullable=False)
    granted_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    details = Column(JSON, nullable=True)
