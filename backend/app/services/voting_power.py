"""Voting power calculator.

Two different numbers live here and must not be confused:

* ``VotingPowerCalculator.calculate`` is the canonical vote weight: free
  balance, plus locked tokens with a time bonus, plus unexpired incoming
  delegations.
* ``VotingPowerCalculator.breakdown`` is an informational heuristic
  (investments, account age, voting activity) shown next to the
  create-proposal form. It never feeds a vote or an eligibility gate.
"""
import math
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.clock import Clock, utcnow
from app.errors import NotFoundError
from app.models.database import store_errors
from app.models.governance import GovernanceVote
from app.models.token import LockStatus, TokenLock, VotingPowerDelegation
from app.models.user import Investment, InvestmentStatus, User

logger = structlog.get_logger()

SECONDS_PER_DAY = 24 * 60 * 60

# A lock with a year or more remaining earns the full 36.5% bonus
LOCK_BONUS_HORIZON_DAYS = 365
MAX_LOCK_BONUS = 0.365

INVESTMENT_POWER_UNIT = 100
ACCOUNT_AGE_POWER_DAYS = 30
ACCOUNT_AGE_POWER_CAP = 10
ACTIVITY_POWER_VOTES = 5
ACTIVITY_POWER_CAP = 5


def lock_weight(amount: float, unlock_date: datetime, now: datetime) -> float:
    """Voting weight of a locked amount given the time left until it unlocks"""
    days_remaining = max(0.0, (unlock_date - now).total_seconds() / SECONDS_PER_DAY)
    time_bonus = min(days_remaining / LOCK_BONUS_HORIZON_DAYS, 1) * MAX_LOCK_BONUS
    return amount * (1 + time_bonus)


def floor_power(power: float) -> int:
    return math.floor(power)


@dataclass
class PowerComponent:
    value: int
    details: str


@dataclass
class VotingPowerBreakdown:
    total_voting_power: int
    investment_power: PowerComponent
    account_age_power: PowerComponent
    activity_power: PowerComponent


class VotingPowerCalculator:
    """Reads ledger state and derives voting power; recomputed on every call."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def calculate(self, user_id: str) -> float:
        """Canonical voting power, unfloored"""
        async with store_errors("calculate voting power", user_id=user_id):
            return await self._calculate(user_id)

    async def breakdown(self, user_id: str) -> VotingPowerBreakdown:
        """Display-only heuristic from investments, account age and voting activity"""
        async with store_errors("calculate voting power breakdown", user_id=user_id):
            return await self._breakdown(user_id)

    async def _calculate(self, user_id: str) -> float:
        now = self.clock()

        result = await self.db.execute(
            select(User.token_balance).where(User.id == user_id)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            raise NotFoundError("User not found")

        locks = await self.db.execute(
            select(TokenLock.amount, TokenLock.unlock_date).where(
                TokenLock.user_id == user_id,
                TokenLock.status == LockStatus.LOCKED,
            )
        )
        locked_power = sum(lock_weight(row.amount, row.unlock_date, now) for row in locks.all())

        delegated = await self.db.execute(
            select(func.coalesce(func.sum(VotingPowerDelegation.amount), 0.0)).where(
                VotingPowerDelegation.to_user_id == user_id,
                VotingPowerDelegation.expiry_date > now,
            )
        )
        delegated_power = delegated.scalar_one()

        power = locked_power + balance + delegated_power

        logger.debug(
            "Calculated voting power",
            user_id=user_id,
            balance=balance,
            locked_power=locked_power,
            delegated_power=delegated_power,
            voting_power=power,
        )
        return power

    async def _breakdown(self, user_id: str) -> VotingPowerBreakdown:
        now = self.clock()

        result = await self.db.execute(
            select(User.created_at).where(User.id == user_id)
        )
        created_at = result.scalar_one_or_none()
        if created_at is None:
            raise NotFoundError("User not found")

        investments = await self.db.execute(
            select(func.coalesce(func.sum(Investment.amount), 0.0)).where(
                Investment.user_id == user_id,
                Investment.status == InvestmentStatus.ACTIVE,
            )
        )
        total_investment = investments.scalar_one()

        votes = await self.db.execute(
            select(func.count(GovernanceVote.id)).where(GovernanceVote.user_id == user_id)
        )
        previous_votes = votes.scalar_one()

        account_age_days = max(0, math.floor((now - created_at).total_seconds() / SECONDS_PER_DAY))

        investment_power = math.floor(total_investment / INVESTMENT_POWER_UNIT)
        age_power = min(math.floor(account_age_days / ACCOUNT_AGE_POWER_DAYS), ACCOUNT_AGE_POWER_CAP)
        activity_power = min(math.floor(previous_votes / ACTIVITY_POWER_VOTES), ACTIVITY_POWER_CAP)

        return VotingPowerBreakdown(
            total_voting_power=investment_power + age_power + activity_power,
            investment_power=PowerComponent(
                value=investment_power,
                details=f"Based on ${total_investment:.2f} total investment",
            ),
            account_age_power=PowerComponent(
                value=age_power,
                details=f"Based on {account_age_days} days account age",
            ),
            activity_power=PowerComponent(
                value=activity_power,
                details=f"Based on {previous_votes} previous votes",
            ),
        )
