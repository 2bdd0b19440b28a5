"""/v1/ledger/{user_id} - point balance, consumption, credits and rewards"""

from fastapi import APIRouter, Depends, HTTPException

from fakedetector_accounts.api.dependencies import get_point_ledger
from fakedetector_accounts.api.v1.schemas import (
    BalanceResponse,
    ConsumeResponse,
    CreditRequest,
    RewardResponse,
)
from fakedetector_accounts.domain.exceptions import AccountNotFoundError, InvalidAmountError, InvalidTierError
from fakedetector_accounts.domain.models import RewardResult
from fakedetector_accounts.services.point_ledger import PointLedger

router = APIRouter()


@router.get("/ledger/{user_id}/balance", response_model=BalanceResponse)
def get_balance(user_id: str, ledger: PointLedger = Depends(get_point_ledger)):
    try:
        return BalanceResponse.from_balance(ledger.get_balance(user_id))
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")


@router.post("/ledger/{user_id}/consume", response_model=ConsumeResponse)
def consume_point(user_id: str, ledger: PointLedger = Depends(get_point_ledger)):
    """
    Spend one detection point.

    Returns:
        The tier the point came from, or 402 when the account's hierarchy is empty
    """
    try:
        result = ledger.consume(user_id)
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")

    if not result.success:
        raise HTTPException(status_code=402, detail=result.message)

    return ConsumeResponse(
        tier_used=result.tier_used,
        message=result.message,
        balance=BalanceResponse.from_balance(result.balance),
    )


@router.post("/ledger/{user_id}/credit", response_model=BalanceResponse)
def credit_points(user_id: str, request_body: CreditRequest, ledger: PointLedger = Depends(get_point_ledger)):
    """Admin credit of an explicitly named tier"""
    try:
        balance = ledger.credit_specific_tier(
            user_id,
            request_body.tier,
            request_body.amount,
            upgrade_plan=request_body.upgrade_plan,
            source="admin",
        )
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")
    except (InvalidTierError, InvalidAmountError) as e:
        raise HTTPException(status_code=422, detail=str(e))

    return BalanceResponse.from_balance(balance)


@router.post("/ledger/{user_id}/daily-point", response_model=RewardResponse)
def claim_daily_point(user_id: str, ledger: PointLedger = Depends(get_point_ledger)):
    try:
        return _reward_response(ledger.claim_daily_free_point(user_id))
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")


@router.post("/ledger/{user_id}/ad-reward", response_model=RewardResponse)
def claim_ad_reward(user_id: str, ledger: PointLedger = Depends(get_point_ledger)):
    try:
        return _reward_response(ledger.grant_ad_reward(user_id))
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")


def _reward_response(result: RewardResult) -> RewardResponse:
    return RewardResponse(
        granted=result.granted,
        points_added=result.points_added,
        rewards_used=result.rewards_used,
        next_available_at=result.next_available_at,
        balance=BalanceResponse.from_balance(result.balance),
    )
