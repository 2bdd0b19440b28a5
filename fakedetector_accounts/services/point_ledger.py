"""
Point ledger: tier-isolated consumption, crediting and rewards.

Every balance change is a conditional UPDATE in LedgerRepository; this module
decides which update to issue and owns the commit.
"""

import logging
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from fakedetector_accounts.config import Settings, settings as default_settings
from fakedetector_accounts.domain.exceptions import AccountNotFoundError, InvalidAmountError
from fakedetector_accounts.domain.models import (
    ConsumptionResult,
    LedgerBalance,
    PlanTier,
    RewardResult,
    consumption_hierarchy,
)
from fakedetector_accounts.infrastructure.database.repositories import (
    AccountRepository,
    LedgerRepository,
    RewardLogRepository,
    tier_balances,
)
from fakedetector_accounts.infrastructure.observability.logging import log_consumption
from fakedetector_accounts.infrastructure.observability.metrics import record_consumption, record_credit
from fakedetector_accounts.utils.time_utils import next_utc_midnight, utc_today, utcnow

logger = logging.getLogger(__name__)

DAILY_FREE_REWARD = "daily_free"
AD_WATCH_REWARD = "ad_watch"
AD_REWARD_PERIOD = timedelta(hours=24)

# Plan changes between reading the hierarchy and spending are retried this many times
CONSUME_PLAN_RETRIES = 2


class PointLedger:
    """Business logic over the per-account ledger row"""

    def __init__(
        self,
        db: Session,
        settings: Settings | None = None,
        clock: Callable = utcnow,
    ):
        config = settings or default_settings
        self.db = db
        self.accounts = AccountRepository(db)
        self.ledgers = LedgerRepository(db)
        self.rewards = RewardLogRepository(db)
        self.signup_free_points = config.signup_free_points
        self.ad_reward_daily_limit = config.ad_reward_daily_limit
        self.clock = clock

    def open_account(self, email: str) -> LedgerBalance:
        """Create an account and its ledger (with any signup grant); returns the existing one if present"""
        account = self.accounts.find_by_email(email)
        if account is None:
            account = self.accounts.create(email)
        if self.ledgers.get(account.id) is None:
            self.ledgers.create(account.id, plan_tier=PlanTier.FREE, free_points=self.signup_free_points)
        self.db.commit()
        return self.get_balance(account.id)

    def get_balance(self, user_id: str) -> LedgerBalance:
        ledger = self.ledgers.get(user_id)
        if ledger is None:
            raise AccountNotFoundError(f"No ledger for user {user_id}")

        plan_tier = PlanTier.parse(ledger.plan_tier or PlanTier.FREE.value)
        return LedgerBalance(
            user_id=user_id,
            plan_tier=plan_tier,
            per_tier=tier_balances(ledger),
            total=ledger.aggregate_balance,
            hierarchy=consumption_hierarchy(plan_tier),
        )

    def consume(self, user_id: str) -> ConsumptionResult:
        """
        Spend one point from the first tier in the account's hierarchy that has one.

        Returns a ConsumptionResult with tier_used=None when nothing is
        available; that is an ordinary outcome, not an error.

        Raises:
            AccountNotFoundError: No ledger exists for user_id
        """
        tier_used: Optional[PlanTier] = None
        plan_tier = self._plan_tier(user_id)

        for _ in range(CONSUME_PLAN_RETRIES):
            for tier in consumption_hierarchy(plan_tier):
                if self.ledgers.decrement_tier(user_id, tier, plan_tier=plan_tier):
                    tier_used = tier
                    break
            if tier_used is not None:
                break
            current = self._plan_tier(user_id)
            if current is plan_tier:
                break
            plan_tier = current

        self.db.commit()

        balance = self.get_balance(user_id)
        record_consumption(balance.plan_tier.value, tier_used.value if tier_used else None)
        log_consumption(user_id, balance.plan_tier.value, tier_used.value if tier_used else None, balance.available)
        return ConsumptionResult(tier_used=tier_used, balance=balance)

    def credit_specific_tier(
        self,
        user_id: str,
        tier,
        amount: int,
        *,
        upgrade_plan: bool = True,
        commit: bool = True,
        source: str = "purchase",
    ) -> LedgerBalance:
        """
        Add `amount` points to the named tier.

        A paid tier ranked above the current plan upgrades the plan unless
        upgrade_plan is False. With commit=False the caller owns the
        transaction (the payment pipeline writes its record in the same one).

        Raises:
            InvalidTierError: tier is not free/basic/standard/business
            InvalidAmountError: amount is not a positive integer
            AccountNotFoundError: No ledger exists for user_id
        """
        tier = PlanTier.parse(tier)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(f"Point amount must be a positive integer, got {amount!r}")

        if not self.ledgers.increment_tier(user_id, tier, amount):
            raise AccountNotFoundError(f"No ledger for user {user_id}")
        if upgrade_plan and tier.is_paid and self.ledgers.upgrade_plan(user_id, tier):
            logger.info("Plan upgraded", extra={"user_id": user_id, "plan_tier": tier.value})

        if not commit:
            self.db.flush()
            return self.get_balance(user_id)

        self.db.commit()
        record_credit(tier.value, amount, source)
        logger.info(
            "Points credited",
            extra={"user_id": user_id, "tier": tier.value, "amount": amount, "source": source},
        )
        return self.get_balance(user_id)

    def claim_daily_free_point(self, user_id: str) -> RewardResult:
        """One free point per UTC day"""
        now = self.clock()
        self._plan_tier(user_id)

        granted = self.ledgers.grant_daily_free_point(user_id, utc_today(now))
        if granted:
            self.rewards.create(user_id, DAILY_FREE_REWARD, 1, now)
        self.db.commit()

        if granted:
            record_credit(PlanTier.FREE.value, 1, "daily")
        return RewardResult(
            granted=granted,
            points_added=1 if granted else 0,
            balance=self.get_balance(user_id),
            next_available_at=next_utc_midnight(now),
            rewards_used=1,
        )

    def grant_ad_reward(self, user_id: str) -> RewardResult:
        """
        One basic point per watched ad, limited per rolling 24 hours.

        The reward never changes the plan tier. Two simultaneous claims at
        the limit can both pass the count check; the log keeps both.
        """
        now = self.clock()
        self._plan_tier(user_id)

        recent = self.rewards.list_since(user_id, AD_WATCH_REWARD, now - AD_REWARD_PERIOD)
        if len(recent) >= self.ad_reward_daily_limit:
            return RewardResult(
                granted=False,
                points_added=0,
                balance=self.get_balance(user_id),
                next_available_at=recent[0].granted_at + AD_REWARD_PERIOD,
                rewards_used=len(recent),
            )

        self.ledgers.increment_tier(user_id, PlanTier.BASIC, 1)
        self.rewards.create(user_id, AD_WATCH_REWARD, 1, now, details={"tier": PlanTier.BASIC.value})
        self.db.commit()
        record_credit(PlanTier.BASIC.value, 1, "reward")

        used = len(recent) + 1
        next_available_at = None
        if used >= self.ad_reward_daily_limit:
            next_available_at = (recent[0].granted_at if recent else now) + AD_REWARD_PERIOD
        return RewardResult(
            granted=True,
            points_added=1,
            balance=self.get_balance(user_id),
            next_available_at=next_available_at,
            rewards_used=used,
        )

    def reset_free_points(self) -> int:
        """Maintenance: zero every free balance; returns ledgers touched"""
        touched = self.ledgers.reset_free_points()
        self.db.commit()
        logger.info("Free points reset", extra={"ledgers": touched})
        return touched

    def _plan_tier(self, user_id: str) -> PlanTier:
        value = self.ledgers.get_plan_tier(user_id)
        if value is None:
            if self.ledgers.get(user_id) is None:
                raise AccountNotFoundError(f"No ledger for user {user_id}")
            return PlanTier.FREE
        return PlanTier.parse(value)
