"""Token ledger and voting power schemas"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class LockRequest(BaseModel):
    user_id: str
    amount: float = Field(..., ge=0.01)
    duration_days: int = Field(..., ge=1)


class DelegateRequest(BaseModel):
    from_user_id: str
    to_user_id: str
    amount: float = Field(..., ge=0.01)
    duration_days: Optional[int] = Field(None, ge=1)


class BalanceResponse(BaseModel):
    user_id: str
    balance: float


class TokenLockResponse(BaseModel):
    id: str
    user_id: str
    amount: float
    lock_date: datetime
    unlock_date: datetime
    status: str


class LockedTokensResponse(BaseModel):
    user_id: str
    locked_tokens: List[TokenLockResponse]
    total_locked: float


class UnlockResponse(BaseModel):
    message: str
    unlocked_amount: float


class DelegationResponse(BaseModel):
    id: str
    from_user_id: str
    to_user_id: str
    amount: float
    expiry_date: datetime
    created_at: Optional[datetime] = None
    is_expired: bool = False


class DelegationsResponse(BaseModel):
    user_id: str
    outgoing: List[DelegationResponse]
    incoming: List[DelegationResponse]


class MessageResponse(BaseModel):
    message: str


class VotingPowerResponse(BaseModel):
    user_id: str
    voting_power: float


class PowerComponentResponse(BaseModel):
    value: int
    details: str


class VotingPowerBreakdownResponse(BaseModel):
    user_id: str
    total_voting_power: int
    investment_power: PowerComponentResponse
    account_age_power: PowerComponentResponse
    activity_power: PowerComponentResponse


class ActivityResponse(BaseModel):
    id: str
    user_id: str
    activity_type: str
    amount: Optional[float] = None
    counterparty_id: Optional[str] = None
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    created_at: datetime
