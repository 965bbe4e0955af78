"""Voting power API endpoints"""
from fastapi import APIRouter, Depends

from app.api.deps import CurrentUser, get_current_user, get_voting_power_calculator
from app.schemas.token import PowerComponentResponse, VotingPowerBreakdownResponse, VotingPowerResponse
from app.services.voting_power import VotingPowerCalculator

router = APIRouter()


@router.get("/{user_id}", response_model=VotingPowerResponse)
async def get_voting_power(
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    calculator: VotingPowerCalculator = Depends(get_voting_power_calculator),
):
    """Canonical voting power: balance, time-weighted locks and incoming delegations"""
    power = await calculator.calculate(user_id)
    return VotingPowerResponse(user_id=user_id, voting_power=power)


@router.get("/{user_id}/breakdown", response_model=VotingPowerBreakdownResponse)
async def get_voting_power_breakdown(
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    calculator: VotingPowerCalculator = Depends(get_voting_power_calculator),
):
    """Informational breakdown from investments, account age and voting activity"""
    breakdown = await calculator.breakdown(user_id)
    return VotingPowerBreakdownResponse(
        user_id=user_id,
        total_voting_power=breakdown.total_voting_power,
        investment_power=PowerComponentResponse(**vars(breakdown.investment_power)),
        account_age_power=PowerComponentResponse(**vars(breakdown.account_age_power)),
        activity_power=PowerComponentResponse(**vars(breakdown.activity_power)),
    )
