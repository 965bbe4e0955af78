"""Activity service for recording and querying the ledger/governance audit trail."""
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity import ActivityRecord, ActivityType
from app.models.database import store_errors

logger = structlog.get_logger()


class ActivityService:
    """Service for recording and querying activity records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        user_id: str,
        activity_type: ActivityType,
        amount: Optional[float] = None,
        counterparty_id: Optional[str] = None,
        reference_id: Optional[str] = None,
        reference_type: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        notes: Optional[str] = None,
    ) -> ActivityRecord:
        """
        Record an activity row in the caller's open transaction.

        The caller owns the commit; nothing is persisted if its unit of work
        rolls back.

        Args:
            user_id: The acting user
            activity_type: What happened (from ActivityType enum)
            amount: Tokens or voting power involved
            counterparty_id: Other user involved (delegation recipient)
            reference_id: ID of related entity
            reference_type: Type of related entity
            data: Additional type-specific data as JSON
            notes: Human-readable notes

        Returns:
            The created ActivityRecord
        """
        record = ActivityRecord(
            user_id=user_id,
            activity_type=activity_type,
            amount=amount,
            counterparty_id=counterparty_id,
            reference_id=reference_id,
            reference_type=reference_type,
            data=data,
            notes=notes,
        )

        self.db.add(record)
        await self.db.flush()

        logger.debug(
            "Recorded activity",
            activity_id=record.id,
            activity_type=activity_type.value,
            user_id=user_id,
            amount=amount,
        )

        return record

    async def get_user_activity(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        activity_types: Optional[List[ActivityType]] = None,
    ) -> List[ActivityRecord]:
        """
        Get activity for a user, newest first.

        Args:
            user_id: The acting user, or the counterparty of a delegation
            limit: Maximum records to return
            offset: Records to skip
            activity_types: Optional filter for specific activity types
        """
        query = select(ActivityRecord).where(
            (ActivityRecord.user_id == user_id) |
            (ActivityRecord.counterparty_id == user_id)
        )

        if activity_types:
            query = query.where(ActivityRecord.activity_type.in_(activity_types))

        query = query.order_by(
            ActivityRecord.created_at.desc(),
            ActivityRecord.id.desc(),
        ).limit(limit).offset(offset)

        async with store_errors("get user activity", user_id=user_id):
            result = await self.db.execute(query)
            return list(result.scalars().all())
