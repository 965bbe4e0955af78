"""Activity log model for ledger and governance audit trails."""
import enum

from sqlalchemy import Column, String, Float, DateTime, Text, ForeignKey, Index, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship

from app.clock import utcnow
from app.models.database import Base
from app.models.user import new_id


class ActivityType(str, enum.Enum):
    """All recorded activity types."""
    # Token ledger
    TOKEN_LOCK = "token_lock"
    TOKEN_UNLOCK = "token_unlock"
    DELEGATION_CREATE = "delegation_create"
    DELEGATION_REVOKE = "delegation_revoke"

    # Governance
    PROPOSAL_CREATE = "proposal_create"
    VOTE = "vote"


class ActivityRecord(Base):
    """
    One row per committed ledger or governance mutation.

    Written inside the same transaction as the mutation it describes, so a
    rolled-back operation never leaves an activity row behind.
    """
    __tablename__ = "activity_records"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    activity_type = Column(SQLEnum(ActivityType), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    amount = Column(Float, nullable=True)
    counterparty_id = Column(String(36), nullable=True)  # delegation recipient, etc.

    # Reference to related entity
    reference_id = Column(String(36), nullable=True)
    reference_type = Column(String(50), nullable=True)  # token_lock, delegation, proposal, vote

    data = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    user = relationship("User", lazy="raise")

    __table_args__ = (
        Index("ix_activity_user_created", "user_id", "created_at"),
        Index("ix_activity_reference", "reference_type", "reference_id"),
    )

    def __repr__(self):
        return f"<ActivityRecord(type={self.activity_type}, user={self.user_id})>"
