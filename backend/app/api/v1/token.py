"""Token ledger API endpoints"""
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import (
    CurrentUser,
    ensure_self_or_admin,
    get_activity_service,
    get_current_user,
    get_ledger,
)
from app.clock import utcnow
from app.models.activity import ActivityType
from app.models.token import TokenLock, VotingPowerDelegation
from app.schemas.token import (
    ActivityResponse,
    BalanceResponse,
    DelegateRequest,
    DelegationResponse,
    DelegationsResponse,
    LockRequest,
    LockedTokensResponse,
    MessageResponse,
    TokenLockResponse,
    UnlockResponse,
)
from app.services.activity import ActivityService
from app.services.ledger import TokenLedger

router = APIRouter()


def _lock_to_response(lock: TokenLock) -> TokenLockResponse:
    return TokenLockResponse(
        id=lock.id,
        user_id=lock.user_id,
        amount=lock.amount,
        lock_date=lock.lock_date,
        unlock_date=lock.unlock_date,
        status=lock.status.value,
    )


def _delegation_to_response(d: VotingPowerDelegation) -> DelegationResponse:
    return DelegationResponse(
        id=d.id,
        from_user_id=d.from_user_id,
        to_user_id=d.to_user_id,
        amount=d.amount,
        expiry_date=d.expiry_date,
        created_at=d.created_at,
        is_expired=d.expiry_date <= utcnow(),
    )


@router.get("/balance/{user_id}", response_model=BalanceResponse)
async def get_balance(
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    ledger: TokenLedger = Depends(get_ledger),
):
    """Get a user's free token balance"""
    ensure_self_or_admin(user, user_id)
    balance = await ledger.get_balance(user_id)
    return BalanceResponse(user_id=user_id, balance=balance)


@router.get("/locked/{user_id}", response_model=LockedTokensResponse)
async def get_locked_tokens(
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    ledger: TokenLedger = Depends(get_ledger),
):
    """Get a user's active token locks"""
    ensure_self_or_admin(user, user_id)
    locks = await ledger.get_locked_tokens(user_id)
    return LockedTokensResponse(
        user_id=user_id,
        locked_tokens=[_lock_to_response(lock) for lock in locks],
        total_locked=sum(lock.amount for lock in locks),
    )


@router.post("/lock", response_model=TokenLockResponse, status_code=201)
async def lock_tokens(
    request: LockRequest,
    user: CurrentUser = Depends(get_current_user),
    ledger: TokenLedger = Depends(get_ledger),
):
    """Lock tokens to increase voting power"""
    ensure_self_or_admin(user, request.user_id)
    lock = await ledger.lock(request.user_id, request.amount, request.duration_days)
    return _lock_to_response(lock)


@router.post("/delegate", response_model=DelegationResponse, status_code=201)
async def delegate_voting_power(
    request: DelegateRequest,
    user: CurrentUser = Depends(get_current_user),
    ledger: TokenLedger = Depends(get_ledger),
):
    """Delegate voting power to another user"""
    ensure_self_or_admin(user, request.from_user_id)

    expiry_date = None
    if request.duration_days:
        expiry_date = utcnow() + timedelta(days=request.duration_days)

    delegation = await ledger.delegate(
        request.from_user_id,
        request.to_user_id,
        request.amount,
        expiry_date,
    )
    return _delegation_to_response(delegation)


@router.post("/revoke-delegation/{delegation_id}", response_model=MessageResponse)
async def revoke_delegation(
    delegation_id: str,
    user: CurrentUser = Depends(get_current_user),
    ledger: TokenLedger = Depends(get_ledger),
):
    """Revoke a delegation; only its delegator (or an admin) may do so"""
    await ledger.revoke_delegation(delegation_id, user.id, as_admin=user.is_admin)
    return MessageResponse(message="Delegation revoked successfully")


@router.post("/unlock-expired/{user_id}", response_model=UnlockResponse)
async def unlock_expired_tokens(
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    ledger: TokenLedger = Depends(get_ledger),
):
    """Return every expired lock to the free balance"""
    ensure_self_or_admin(user, user_id)
    unlocked = await ledger.unlock_expired(user_id)
    return UnlockResponse(
        message="Expired tokens unlocked successfully",
        unlocked_amount=unlocked,
    )


@router.get("/delegations/{user_id}", response_model=DelegationsResponse)
async def list_delegations(
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    ledger: TokenLedger = Depends(get_ledger),
):
    """List delegations a user has given and received"""
    ensure_self_or_admin(user, user_id)
    outgoing, incoming = await ledger.list_delegations(user_id)
    return DelegationsResponse(
        user_id=user_id,
        outgoing=[_delegation_to_response(d) for d in outgoing],
        incoming=[_delegation_to_response(d) for d in incoming],
    )


@router.get("/activity/{user_id}", response_model=List[ActivityResponse])
async def get_activity(
    user_id: str,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    activity_type: Optional[List[ActivityType]] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    activity: ActivityService = Depends(get_activity_service),
):
    """Get a user's ledger and governance activity, newest first"""
    ensure_self_or_admin(user, user_id)
    records = await activity.get_user_activity(user_id, limit=limit, offset=offset, activity_types=activity_type)
    return [
        ActivityResponse(
            id=r.id,
            user_id=r.user_id,
            activity_type=r.activity_type.value,
            amount=r.amount,
            counterparty_id=r.counterparty_id,
            reference_id=r.reference_id,
            reference_type=r.reference_type,
            data=r.data,
            notes=r.notes,
            created_at=r.created_at,
        )
        for r in records
    ]
