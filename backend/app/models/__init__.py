"""Database models"""
from app.models.database import Base, get_db, atomic
from app.models.user import User, UserRole, Investment, InvestmentStatus
from app.models.token import TokenLock, LockStatus, VotingPowerDelegation
from app.models.governance import GovernanceProposal, GovernanceOption, GovernanceVote
from app.models.activity import ActivityRecord, ActivityType

__all__ = [
    "Base",
    "get_db",
    "atomic",
    "User",
    "UserRole",
    "Investment",
    "InvestmentStatus",
    # Token ledger
    "TokenLock",
    "LockStatus",
    "VotingPowerDelegation",
    # Governance
    "GovernanceProposal",
    "GovernanceOption",
    "GovernanceVote",
    # Audit trail
    "ActivityRecord",
    "ActivityType",
]
