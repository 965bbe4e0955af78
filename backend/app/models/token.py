"""Token lock and delegation models"""
import enum

from sqlalchemy import Column, String, Float, DateTime, ForeignKey, Index, CheckConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship

from app.clock import utcnow
from app.models.database import Base
from app.models.user import new_id


class LockStatus(str, enum.Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class TokenLock(Base):
    """Tokens removed from a user's free balance until unlock_date"""
    __tablename__ = "token_locks"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    lock_date = Column(DateTime, nullable=False)
    unlock_date = Column(DateTime, nullable=False)
    status = Column(SQLEnum(LockStatus), nullable=False, default=LockStatus.LOCKED)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="locks", lazy="raise")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_token_locks_amount_positive"),
        Index("ix_token_locks_user_status_unlock", "user_id", "status", "unlock_date"),
    )

    def __repr__(self):
        return f"<TokenLock {self.amount} until {self.unlock_date} ({self.status})>"


class VotingPowerDelegation(Base):
    """Directed delegation of voting power from one user to another"""
    __tablename__ = "voting_power_delegations"

    id = Column(String(36), primary_key=True, default=new_id)
    from_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    to_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    expiry_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    from_user = relationship("User", foreign_keys=[from_user_id], lazy="raise")
    to_user = relationship("User", foreign_keys=[to_user_id], lazy="raise")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_delegations_amount_positive"),
        CheckConstraint("from_user_id <> to_user_id", name="ck_delegations_not_self"),
        Index("ix_delegations_to_expiry", "to_user_id", "expiry_date"),
    )

    def __repr__(self):
        return f"<VotingPowerDelegation {self.from_user_id[:8]} -> {self.to_user_id[:8]} ({self.amount})>"
