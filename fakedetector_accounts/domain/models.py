"""Domain models - pure Python dataclasses and enums representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from fakedetector_accounts.domain.exceptions import InvalidTierError


class PlanTier(str, Enum):
    """Subscription tier; also names the four independent point balances"""

    FREE = "free"
    BASIC = "basic"
    STANDARD = "standard"
    BUSINESS = "business"

    @property
    def rank(self) -> int:
        return TIER_RANK[self]

    @property
    def is_paid(self) -> bool:
        return self is not PlanTier.FREE

    @classmethod
    def parse(cls, value: Any) -> "PlanTier":
        """Resolve a tier name case-insensitively, raising InvalidTierError otherwise"""
        if isinstance(value, PlanTier):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise InvalidTierError(f"Unknown plan tier: {value!r}") from e


TIER_RANK: Dict[PlanTier, int] = {
    PlanTier.FREE: 0,
    PlanTier.BASIC: 1,
    PlanTier.STANDARD: 2,
    PlanTier.BUSINESS: 3,
}

# Which balances an account may spend, in order of preference.
# A business account never falls through to basic points.
CONSUMPTION_HIERARCHY: Dict[PlanTier, List[PlanTier]] = {
    PlanTier.BUSINESS: [PlanTier.BUSINESS, PlanTier.STANDARD],
    PlanTier.STANDARD: [PlanTier.STANDARD, PlanTier.BASIC],
    PlanTier.BASIC: [PlanTier.BASIC],
    PlanTier.FREE: [PlanTier.FREE],
}


def consumption_hierarchy(plan_tier: Optional[PlanTier]) -> List[PlanTier]:
    """Tiers an account may consume from; accounts without a plan are treated as free"""
    return list(CONSUMPTION_HIERARCHY[plan_tier or PlanTier.FREE])


@dataclass
class LedgerBalance:
    """Read-only projection of an account's point balances"""

    user_id: str
    plan_tier: PlanTier
    per_tier: Dict[PlanTier, int]
    total: int
    hierarchy: List[PlanTier]

    @property
    def available(self) -> int:
        """Points the account can actually spend under its hierarchy"""
        return sum(self.per_tier[tier] for tier in self.hierarchy)


@dataclass
class ConsumptionResult:
    """Outcome of consuming one point; tier_used is None when nothing was available"""

    tier_used: Optional[PlanTier]
    balance: LedgerBalance

    @property
    def success(self) -> bool:
        return self.tier_used is not None

    @property
    def message(self) -> str:
        if self.success:
            return f"Consumed 1 {self.tier_used.value} point"
        return (
            f"No points available. {self.balance.plan_tier.value.capitalize()} plan users "
            f"must purchase more points at their tier."
        )


@dataclass
class RewardResult:
    """Outcome of a daily or ad-watch reward claim"""

    granted: bool
    points_added: int
    balance: LedgerBalance
    next_available_at: Optional[datetime] = None
    rewards_used: int = 0


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class GatewayVerification:
    """Authoritative transaction details reported by the gateway's verify API"""

    verified: bool
    transaction_id: str
    amount_minor: int = 0
    currency: str = "NGN"
    customer_email: Optional[str] = None
    purchased_tier: Optional[str] = None
    points_count: Optional[int] = None
    error: Optional[str] = None


class CreditingStatus(str, Enum):
    CREDITED = "credited"
    DUPLICATE_IGNORED = "duplicate_ignored"
    VERIFICATION_FAILED = "verification_failed"
    IGNORED = "ignored"


@dataclass
class CreditingOutcome:
    """Result of handling one gateway event"""

    status: CreditingStatus
    gateway: str
    transaction_id: Optional[str] = None
    user_id: Optional[str] = None
    tier: Optional[PlanTier] = None
    points: int = 0
    amount_minor: int = 0
    reason: Optional[str] = None

    @property
    def credited(self) -> bool:
        return self.status is CreditingStatus.CREDITED


class AttemptKind(str, Enum):
    LOGIN = "login"
    SIGNUP = "signup"


class AttemptStatus(str, Enum):
    TRACKING = "tracking"
    NEWLY_BLOCKED = "newly_blocked"
    ALREADY_BLOCKED = "already_blocked"


@dataclass
class AttemptOutcome:
    """State of an email's tracking window after recording a failure"""

    status: AttemptStatus
    email: str
    attempt_count: int
    blocked_until: Optional[datetime] = None


@dataclass
class BlockStatus:
    """Answer to 'may this email attempt to authenticate right now?'"""

    blocked: bool
    remaining_attempts: int
    blocked_until: Optional[datetime] = None


@dataclass
class AlertEvent:
    """Event handed to the notification sink"""

    kind: str
    severity: str
    subject_id: str
    details: Dict[str, Any] = field(default_factory=dict)
