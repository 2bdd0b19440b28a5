"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from fakedetector_accounts.domain.models import AttemptKind, LedgerBalance, PlanTier


class BalanceResponse(BaseModel):
    """Response for GET /v1/ledger/{user_id}/balance"""

    user_id: str
    plan_tier: PlanTier
    per_tier: Dict[str, int]
    total: int
    available: int
    hierarchy: List[PlanTier]

    @classmethod
    def from_balance(cls, balance: LedgerBalance) -> "BalanceResponse":
        return cls(
            user_id=balance.user_id,
            plan_tier=balance.plan_tier,
            per_tier={tier.value: amount for tier, amount in balance.per_tier.items()},
            total=balance.total,
            available=balance.available,
            hierarchy=balance.hierarchy,
        )


class ConsumeResponse(BaseModel):
    """Response for POST /v1/ledger/{user_id}/consume"""

    tier_used: PlanTier
    message: str
    balance: BalanceResponse


class CreditRequest(BaseModel):
    """Request body for POST /v1/ledger/{user_id}/credit"""

    tier: str = Field(..., min_length=1, description="free | basic | standard | business")
    amount: int = Field(..., gt=0, description="Points to add")
    upgrade_plan: bool = Field(True, description="Raise the plan to a higher purchased tier")


class RewardResponse(BaseModel):
    """Response for daily-point and ad-reward claims"""

    granted: bool
    points_added: int
    rewards_used: int
    next_available_at: Optional[datetime] = None
    balance: BalanceResponse


class WebhookResponse(BaseModel):
    """Response for POST /v1/webhooks/{gateway}"""

    status: str
    transaction_id: Optional[str] = None
    tier: Optional[PlanTier] = None
    points: int = 0
    amount_minor: int = 0
    reason: Optional[str] = None


class FailedAttemptRequest(BaseModel):
    """Request body for POST /v1/auth/failed-attempts"""

    email: str = Field(..., min_length=3, description="Email that failed to authenticate")
    kind: AttemptKind = AttemptKind.LOGIN
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class FailedAttemptResponse(BaseModel):
    status: str
    attempt_count: int
    blocked: bool
    blocked_until: Optional[datetime] = None


class BlockStatusResponse(BaseModel):
    """Response for GET /v1/auth/status"""

    email: str
    kind: AttemptKind
    blocked: bool
    remaining_attempts: int
    blocked_until: Optional[datetime] = None


class SecurityStatsResponse(BaseModel):
    """Response for GET /v1/auth/stats"""

    period_hours: int
    failed_login_windows: int
    failed_signup_windows: int
    blocks_triggered: int
    currently_blocked: int
    currently_blocked_emails: List[str]


class AttemptItem(BaseModel):
    """Single tracking window in GET /v1/auth/attempts"""

    email: str
    kind: AttemptKind
    attempt_count: int
    ip_address: Optional[str] = None
    first_attempt: datetime
    last_attempt: datetime
    blocked_until: Optional[datetime] = None
    is_active: bool
