"""
Data access layer for accounts, ledgers, payments and login attempts.

Repositories flush but never commit; the calling service owns the unit of work.
Every mutation of a shared row is a single conditional UPDATE whose WHERE clause
carries the guard, so the returned rowcount tells the caller whether it won.
"""

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import distinct, func
from sqlalchemy.orm import Session

from fakedetector_accounts.domain.models import AttemptKind, PaymentStatus, PlanTier
from fakedetector_accounts.infrastructure.database.models import (
    Account,
    AccountLedger,
    LoginAttempt,
    PaymentRecord,
    RewardLog,
)
from fakedetector_accounts.utils.time_utils import utcnow

# Balance column owned by each tier
TIER_COLUMNS = {
    PlanTier.FREE: AccountLedger.free_points,
    PlanTier.BASIC: AccountLedger.basic_points,
    PlanTier.STANDARD: AccountLedger.standard_points,
    PlanTier.BUSINESS: AccountLedger.business_points,
}


def tier_balances(ledger: AccountLedger) -> Dict[PlanTier, int]:
    """Read the four tier balances off a ledger row"""
    return {tier: getattr(ledger, column.key) for tier, column in TIER_COLUMNS.items()}


class AccountRepository:
    """Repository for accounts"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, email: str) -> Account:
        account = Account(email=email.strip().lower())
        self.db.add(account)
        self.db.flush()
        return account

    def get(self, user_id: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.id == user_id).first()

    def find_by_email(self, email: str) -> Optional[Account]:
        """Case-insensitive lookup"""
        normalized = email.strip().lower()
        return self.db.query(Account).filter(func.lower(Account.email) == normalized).first()


class LedgerRepository:
    """Repository for per-account point ledgers"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str, plan_tier: PlanTier = PlanTier.FREE, free_points: int = 0) -> AccountLedger:
        ledger = AccountLedger(
            user_id=user_id,
            plan_tier=plan_tier.value,
            free_points=free_points,
            aggregate_balance=free_points,
        )
        self.db.add(ledger)
        self.db.flush()
        return ledger

    def get(self, user_id: str) -> Optional[AccountLedger]:
        """Fetch the ledger, refreshing any stale copy held by the session"""
        return (
            self.db.query(AccountLedger)
            .populate_existing()
            .filter(AccountLedger.user_id == user_id)
            .first()
        )

    def get_plan_tier(self, user_id: str) -> Optional[str]:
        row = self.db.query(AccountLedger.plan_tier).filter(AccountLedger.user_id == user_id).first()
        return row[0] if row else None

    def decrement_tier(self, user_id: str, tier: PlanTier, plan_tier: Optional[PlanTier] = None) -> bool:
        """
        Spend one point from `tier` only if that balance is positive.

        With `plan_tier`, the update also requires the plan to be unchanged
        since the caller chose its hierarchy.
        """
        column = TIER_COLUMNS[tier]
        query = self.db.query(AccountLedger).filter(AccountLedger.user_id == user_id, column > 0)
        if plan_tier is not None:
            query = query.filter(AccountLedger.plan_tier == plan_tier.value)
        updated = (
            query.update(
                {
                    column: column - 1,
                    AccountLedger.aggregate_balance: AccountLedger.aggregate_balance - 1,
                    AccountLedger.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def increment_tier(self, user_id: str, tier: PlanTier, amount: int) -> bool:
        column = TIER_COLUMNS[tier]
        updated = (
            self.db.query(AccountLedger)
            .filter(AccountLedger.user_id == user_id)
            .update(
                {
                    column: column + amount,
                    AccountLedger.aggregate_balance: AccountLedger.aggregate_balance + amount,
                    AccountLedger.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def upgrade_plan(self, user_id: str, tier: PlanTier) -> bool:
        """Raise plan_tier to `tier` if it is currently lower; never lowers it"""
        lower_tiers = [t.value for t in PlanTier if t.rank < tier.rank]
        if not lower_tiers:
            return False
        updated = (
            self.db.query(AccountLedger)
            .filter(AccountLedger.user_id == user_id, AccountLedger.plan_tier.in_(lower_tiers))
            .update(
                {AccountLedger.plan_tier: tier.value, AccountLedger.updated_at: utcnow()},
                synchronize_session=False,
            )
        )
        return updated == 1

    def grant_daily_free_point(self, user_id: str, today: date) -> bool:
        """Add one free point unless one was already given on `today`"""
        updated = (
            self.db.query(AccountLedger)
            .filter(
                AccountLedger.user_id == user_id,
                (AccountLedger.daily_points_last_given.is_(None))
                | (AccountLedger.daily_points_last_given < today),
            )
            .update(
                {
                    AccountLedger.free_points: AccountLedger.free_points + 1,
                    AccountLedger.aggregate_balance: AccountLedger.aggregate_balance + 1,
                    AccountLedger.daily_points_last_given: today,
                    AccountLedger.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def reset_free_points(self) -> int:
        """Zero every free balance, lowering the aggregate by the same amount"""
        return (
            self.db.query(AccountLedger)
            .filter(AccountLedger.free_points > 0)
            .update(
                {
                    AccountLedger.aggregate_balance: AccountLedger.aggregate_balance
                    - AccountLedger.free_points,
                    AccountLedger.free_points: 0,
                    AccountLedger.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )


class PaymentRepository:
    """Repository for payment records"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_transaction_id(self, transaction_id: str) -> Optional[PaymentRecord]:
        return (
            self.db.query(PaymentRecord)
            .populate_existing()
            .filter(PaymentRecord.transaction_id == transaction_id)
            .first()
        )

    def create(
        self,
        transaction_id: str,
        gateway: str,
        status: PaymentStatus,
        user_id: Optional[str] = None,
        amount_minor: int = 0,
        currency: str = "NGN",
        points_purchased: Optional[int] = None,
        plan_tier_credited: Optional[PlanTier] = None,
        failure_reason: Optional[str] = None,
    ) -> PaymentRecord:
        """Insert a record; raises IntegrityError on flush if the transaction id exists"""
        now = utcnow()
        record = PaymentRecord(
            transaction_id=transaction_id,
            gateway=gateway,
            status=status.value,
            user_id=user_id,
            amount_minor=amount_minor,
            currency=currency,
            points_purchased=points_purchased,
            plan_tier_credited=plan_tier_credited.value if plan_tier_credited else None,
            failure_reason=failure_reason,
            processed_at=now if status is PaymentStatus.COMPLETED else None,
            created_at=now,
            updated_at=now,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def mark_completed(
        self,
        transaction_id: str,
        user_id: str,
        amount_minor: int,
        currency: str,
        points_purchased: int,
        plan_tier_credited: PlanTier,
    ) -> bool:
        """pending -> completed; False if another writer already moved the record"""
        now = utcnow()
        updated = (
            self.db.query(PaymentRecord)
            .filter(
                PaymentRecord.transaction_id == transaction_id,
                PaymentRecord.status == PaymentStatus.PENDING.value,
            )
            .update(
                {
                    PaymentRecord.status: PaymentStatus.COMPLETED.value,
                    PaymentRecord.user_id: user_id,
                    PaymentRecord.amount_minor: amount_minor,
                    PaymentRecord.currency: currency,
                    PaymentRecord.points_purchased: points_purchased,
                    PaymentRecord.plan_tier_credited: plan_tier_credited.value,
                    PaymentRecord.failure_reason: None,
                    PaymentRecord.processed_at: now,
                    PaymentRecord.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def mark_failed(
        self,
        transaction_id: str,
        failure_reason: str,
        user_id: Optional[str] = None,
        amount_minor: Optional[int] = None,
    ) -> bool:
        """pending -> failed"""
        values = {
            PaymentRecord.status: PaymentStatus.FAILED.value,
            PaymentRecord.failure_reason: failure_reason,
            PaymentRecord.updated_at: utcnow(),
        }
        if user_id is not None:
            values[PaymentRecord.user_id] = user_id
        if amount_minor:
            values[PaymentRecord.amount_minor] = amount_minor
        updated = (
            self.db.query(PaymentRecord)
            .filter(
                PaymentRecord.transaction_id == transaction_id,
                PaymentRecord.status == PaymentStatus.PENDING.value,
            )
            .update(values, synchronize_session=False)
        )
        return updated == 1

    def list_by_user(self, user_id: str, limit: int = 20) -> List[PaymentRecord]:
        return (
            self.db.query(PaymentRecord)
            .filter(PaymentRecord.user_id == user_id)
            .order_by(PaymentRecord.created_at.desc())
            .limit(limit)
            .all()
        )

    def count_completed(self, transaction_id: str) -> int:
        return (
            self.db.query(PaymentRecord)
            .filter(
                PaymentRecord.transaction_id == transaction_id,
                PaymentRecord.status == PaymentStatus.COMPLETED.value,
            )
            .count()
        )


class LoginAttemptRepository:
    """Repository for failed-authentication tracking windows"""

    def __init__(self, db: Session):
        self.db = db

    def find_active_window(self, email: str, kind: AttemptKind) -> Optional[LoginAttempt]:
        return (
            self.db.query(LoginAttempt)
            .populate_existing()
            .filter(
                LoginAttempt.email == email,
                LoginAttempt.kind == kind.value,
                LoginAttempt.is_active.is_(True),
            )
            .order_by(LoginAttempt.last_attempt.desc())
            .first()
        )

    def get(self, attempt_id: str) -> Optional[LoginAttempt]:
        return (
            self.db.query(LoginAttempt)
            .populate_existing()
            .filter(LoginAttempt.id == attempt_id)
            .first()
        )

    def create_window(
        self,
        email: str,
        kind: AttemptKind,
        ip_address: Optional[str],
        user_agent: Optional[str],
        now: datetime,
    ) -> LoginAttempt:
        """Open a window with one attempt; raises IntegrityError if an active one exists"""
        attempt = LoginAttempt(
            email=email,
            kind=kind.value,
            ip_address=ip_address,
            user_agent=user_agent,
            attempt_count=1,
            first_attempt=now,
            last_attempt=now,
            is_active=True,
            created_at=now,
        )
        self.db.add(attempt)
        self.db.flush()
        return attempt

    def supersede_expired(self, email: str, kind: AttemptKind, window_start: datetime, now: datetime) -> int:
        """Retire the active window if its block has lapsed, or if it went quiet without a block"""
        return (
            self.db.query(LoginAttempt)
            .filter(
                LoginAttempt.email == email,
                LoginAttempt.kind == kind.value,
                LoginAttempt.is_active.is_(True),
                (LoginAttempt.blocked_until <= now)
                | (LoginAttempt.blocked_until.is_(None) & (LoginAttempt.last_attempt < window_start)),
            )
            .update({LoginAttempt.is_active: False}, synchronize_session=False)
        )

    def increment(
        self,
        attempt_id: str,
        threshold: int,
        window_start: datetime,
        ip_address: Optional[str],
        user_agent: Optional[str],
        now: datetime,
    ) -> bool:
        """Count one more failure unless the window is already at threshold, blocked or expired"""
        values = {
            LoginAttempt.attempt_count: LoginAttempt.attempt_count + 1,
            LoginAttempt.last_attempt: now,
        }
        if ip_address:
            values[LoginAttempt.ip_address] = ip_address
        if user_agent:
            values[LoginAttempt.user_agent] = user_agent
        updated = (
            self.db.query(LoginAttempt)
            .filter(
                LoginAttempt.id == attempt_id,
                LoginAttempt.is_active.is_(True),
                LoginAttempt.attempt_count < threshold,
                LoginAttempt.blocked_until.is_(None),
                LoginAttempt.last_attempt >= window_start,
            )
            .update(values, synchronize_session=False)
        )
        return updated == 1

    def set_block(self, attempt_id: str, blocked_until: datetime) -> bool:
        """Set blocked_until once; an existing block is never moved"""
        updated = (
            self.db.query(LoginAttempt)
            .filter(LoginAttempt.id == attempt_id, LoginAttempt.blocked_until.is_(None))
            .update({LoginAttempt.blocked_until: blocked_until}, synchronize_session=False)
        )
        return updated == 1

    def claim_alert(self, attempt_id: str, now: datetime, cooldown: timedelta) -> bool:
        """Reserve the right to alert for this window; False while inside the cooldown"""
        updated = (
            self.db.query(LoginAttempt)
            .filter(
                LoginAttempt.id == attempt_id,
                (LoginAttempt.last_alert_at.is_(None)) | (LoginAttempt.last_alert_at <= now - cooldown),
            )
            .update({LoginAttempt.last_alert_at: now}, synchronize_session=False)
        )
        return updated == 1

    def count_emails_from_ip(self, ip_address: str, kind: AttemptKind, since: datetime) -> int:
        """Distinct emails whose recent failures came from `ip_address`"""
        return (
            self.db.query(func.count(distinct(LoginAttempt.email)))
            .filter(
                LoginAttempt.ip_address == ip_address,
                LoginAttempt.kind == kind.value,
                LoginAttempt.last_attempt >= since,
            )
            .scalar()
        )

    def deactivate_older_than(self, cutoff: datetime) -> int:
        return (
            self.db.query(LoginAttempt)
            .filter(LoginAttempt.is_active.is_(True), LoginAttempt.last_attempt < cutoff)
            .update({LoginAttempt.is_active: False}, synchronize_session=False)
        )

    def count_windows_since(self, since: datetime, kind: Optional[AttemptKind] = None) -> int:
        query = self.db.query(LoginAttempt).filter(LoginAttempt.first_attempt >= since)
        if kind is not None:
            query = query.filter(LoginAttempt.kind == kind.value)
        return query.count()

    def count_blocks_since(self, since: datetime, kind: Optional[AttemptKind] = None) -> int:
        query = self.db.query(LoginAttempt).filter(
            LoginAttempt.blocked_until.isnot(None), LoginAttempt.last_attempt >= since
        )
        if kind is not None:
            query = query.filter(LoginAttempt.kind == kind.value)
        return query.count()

    def currently_blocked_emails(self, now: datetime) -> List[str]:
        rows = (
            self.db.query(LoginAttempt.email)
            .filter(LoginAttempt.is_active.is_(True), LoginAttempt.blocked_until > now)
            .distinct()
            .all()
        )
        return [row[0] for row in rows]

    def list_recent(self, kind: Optional[AttemptKind] = None, limit: int = 50) -> List[LoginAttempt]:
        query = self.db.query(LoginAttempt)
        if kind is not None:
            query = query.filter(LoginAttempt.kind == kind.value)
        return query.order_by(LoginAttempt.last_attempt.desc()).limit(limit).all()


class RewardLogRepository:
    """Repository for reward audit entries"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str, reward_type: str, points_granted: int, granted_at: datetime, details=None) -> RewardLog:
        entry = RewardLog(
            user_id=user_id,
            reward_type=reward_type,
            points_granted=points_granted,
            granted_at=granted_at,
            details=details,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_since(self, user_id: str, reward_type: str, since: datetime) -> List[RewardLog]:
        return (
            self.db.query(RewardLog)
            .filter(
                RewardLog.user_id == user_id,
                RewardLog.reward_type == reward_type,
                RewardLog.granted_at >= since,
            )
            .order_by(RewardLog.granted_at.asc())
            .all()
        )
