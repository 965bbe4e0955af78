"""Token ledger: free balances, time locks and voting-power delegations."""
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.clock import Clock, utcnow, as_naive_utc
from app.errors import (
    ForbiddenError,
    InsufficientBalanceError,
    NotFoundError,
    RecipientNotFoundError,
    SelfDelegationError,
    ValidationError,
)
from app.models.activity import ActivityType
from app.models.database import atomic, store_errors
from app.models.token import LockStatus, TokenLock, VotingPowerDelegation
from app.models.user import User
from app.services.activity import ActivityService

logger = structlog.get_logger()

DEFAULT_DELEGATION_DAYS = 30


class TokenLedger:
    """
    Owns every mutation of User.token_balance.

    Each mutating operation is one atomic unit on the injected session:
    balance changes are relative UPDATEs, and decrements carry the
    sufficiency check in their WHERE clause so the balance can never go
    negative.
    """

    def __init__(
        self,
        db: AsyncSession,
        activity: Optional[ActivityService] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.activity = activity or ActivityService(db)
        self.clock = clock

    async def get_balance(self, user_id: str) -> float:
        """Get a user's free token balance"""
        async with store_errors("get token balance", user_id=user_id):
            result = await self.db.execute(
                select(User.token_balance).where(User.id == user_id)
            )
            balance = result.scalar_one_or_none()
        if balance is None:
            raise NotFoundError("User not found")
        return balance

    async def get_locked_tokens(self, user_id: str) -> List[TokenLock]:
        """Get a user's locks that have not been released yet, soonest unlock first"""
        async with store_errors("get locked tokens", user_id=user_id):
            await self._require_user(user_id)
            result = await self.db.execute(
                select(TokenLock)
                .where(
                    TokenLock.user_id == user_id,
                    TokenLock.status == LockStatus.LOCKED,
                )
                .order_by(TokenLock.unlock_date)
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())

    async def lock(self, user_id: str, amount: float, duration_days: int) -> TokenLock:
        """Move `amount` from the free balance into a lock lasting `duration_days`"""
        if amount <= 0:
            raise ValidationError("Lock amount must be greater than 0")
        if duration_days <= 0:
            raise ValidationError("Lock duration must be greater than 0 days")

        now = self.clock()
        async with atomic(self.db, "lock tokens", user_id=user_id, amount=amount):
            await self._require_user(user_id, for_update=True)
            await self._debit(user_id, amount)

            token_lock = TokenLock(
                user_id=user_id,
                amount=amount,
                lock_date=now,
                unlock_date=now + timedelta(days=duration_days),
                status=LockStatus.LOCKED,
            )
            self.db.add(token_lock)
            await self.db.flush()

            await self.activity.record(
                user_id=user_id,
                activity_type=ActivityType.TOKEN_LOCK,
                amount=amount,
                reference_id=token_lock.id,
                reference_type="token_lock",
                data={"duration_days": duration_days, "unlock_date": token_lock.unlock_date.isoformat()},
            )

        logger.info(
            "Tokens locked",
            user_id=user_id,
            amount=amount,
            lock_id=token_lock.id,
            unlock_date=token_lock.unlock_date.isoformat(),
        )
        return token_lock

    async def unlock_expired(self, user_id: str) -> float:
        """Release every lock whose unlock date has passed; returns the amount credited"""
        now = self.clock()
        async with atomic(self.db, "unlock tokens", user_id=user_id):
            await self._require_user(user_id, for_update=True)

            result = await self.db.execute(
                select(TokenLock.id, TokenLock.amount)
                .where(
                    TokenLock.user_id == user_id,
                    TokenLock.status == LockStatus.LOCKED,
                    TokenLock.unlock_date <= now,
                )
                .with_for_update()
            )
            expired = result.all()
            if not expired:
                return 0.0

            lock_ids = [row.id for row in expired]
            total = sum(row.amount for row in expired)

            await self.db.execute(
                update(TokenLock)
                .where(
                    TokenLock.id.in_(lock_ids),
                    TokenLock.status == LockStatus.LOCKED,
                )
                .values(status=LockStatus.UNLOCKED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await self._credit(user_id, total)

            await self.activity.record(
                user_id=user_id,
                activity_type=ActivityType.TOKEN_UNLOCK,
                amount=total,
                data={"lock_ids": lock_ids},
            )

        logger.info("Expired tokens unlocked", user_id=user_id, amount=total, lock_count=len(lock_ids))
        return total

    async def delegate(
        self,
        from_user_id: str,
        to_user_id: str,
        amount: float,
        expiry_date: Optional[datetime] = None,
    ) -> VotingPowerDelegation:
        """Move `amount` of voting power from one user to another until `expiry_date`"""
        if from_user_id == to_user_id:
            raise SelfDelegationError()
        if amount <= 0:
            raise ValidationError("Delegate amount must be greater than 0")

        now = self.clock()
        expiry = as_naive_utc(expiry_date) if expiry_date else now + timedelta(days=DEFAULT_DELEGATION_DAYS)
        if expiry <= now:
            raise ValidationError("Delegation expiry must be in the future")

        async with atomic(
            self.db, "delegate voting power",
            from_user_id=from_user_id, to_user_id=to_user_id, amount=amount,
        ):
            await self._require_user(from_user_id, for_update=True)
            await self._debit(from_user_id, amount)

            recipient = await self.db.execute(select(User.id).where(User.id == to_user_id))
            if recipient.scalar_one_or_none() is None:
                raise RecipientNotFoundError()

            delegation = VotingPowerDelegation(
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                amount=amount,
                expiry_date=expiry,
            )
            self.db.add(delegation)
            await self.db.flush()

            await self.activity.record(
                user_id=from_user_id,
                activity_type=ActivityType.DELEGATION_CREATE,
                amount=amount,
                counterparty_id=to_user_id,
                reference_id=delegation.id,
                reference_type="delegation",
                data={"expiry_date": expiry.isoformat()},
            )

        logger.info(
            "Voting power delegated",
            delegation_id=delegation.id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=amount,
        )
        return delegation

    async def revoke_delegation(
        self,
        delegation_id: str,
        requester_id: str,
        as_admin: bool = False,
    ) -> None:
        """Delete a delegation and return its amount to the delegator"""
        async with atomic(
            self.db, "revoke delegation",
            delegation_id=delegation_id, requester_id=requester_id,
        ):
            result = await self.db.execute(
                select(VotingPowerDelegation)
                .where(VotingPowerDelegation.id == delegation_id)
                .with_for_update()
            )
            delegation = result.scalar_one_or_none()
            if delegation is None:
                raise NotFoundError("Delegation record not found")
            if delegation.from_user_id != requester_id and not as_admin:
                raise ForbiddenError("Unauthorized to revoke this delegation")

            from_user_id = delegation.from_user_id
            to_user_id = delegation.to_user_id
            amount = delegation.amount

            await self.db.delete(delegation)
            await self.db.flush()
            await self._credit(from_user_id, amount)

            await self.activity.record(
                user_id=from_user_id,
                activity_type=ActivityType.DELEGATION_REVOKE,
                amount=amount,
                counterparty_id=to_user_id,
                reference_id=delegation_id,
                reference_type="delegation",
                data={"revoked_by": requester_id},
            )

        logger.info(
            "Delegation revoked",
            delegation_id=delegation_id,
            from_user_id=from_user_id,
            amount=amount,
            revoked_by=requester_id,
        )

    async def list_delegations(
        self, user_id: str
    ) -> Tuple[List[VotingPowerDelegation], List[VotingPowerDelegation]]:
        """Get (outgoing, incoming) delegations for a user, newest first"""
        async with store_errors("list delegations", user_id=user_id):
            await self._require_user(user_id)
            outgoing = await self.db.execute(
                select(VotingPowerDelegation)
                .where(VotingPowerDelegation.from_user_id == user_id)
                .order_by(VotingPowerDelegation.created_at.desc())
            )
            incoming = await self.db.execute(
                select(VotingPowerDelegation)
                .where(VotingPowerDelegation.to_user_id == user_id)
                .order_by(VotingPowerDelegation.created_at.desc())
            )
            return list(outgoing.scalars().all()), list(incoming.scalars().all())

    async def _require_user(self, user_id: str, for_update: bool = False) -> None:
        query = select(User.id).where(User.id == user_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        if result.scalar_one_or_none() is None:
            raise NotFoundError("User not found")

    async def _debit(self, user_id: str, amount: float) -> None:
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.token_balance >= amount)
            .values(token_balance=User.token_balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InsufficientBalanceError()

    async def _credit(self, user_id: str, amount: float) -> None:
        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(token_balance=User.token_balance + amount)
            .execution_options(synchronize_session=False)
        )
