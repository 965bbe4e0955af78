"""User and investment models"""
import enum
import uuid

from sqlalchemy import Column, String, Float, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship

from app.clock import utcnow
from app.models.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class InvestmentStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class User(Base):
    """Platform user; token_balance is the free (unlocked, undelegated) balance"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(100), nullable=True)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.USER)
    wallet_address = Column(String(44), nullable=True, index=True)
    token_balance = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    locks = relationship("TokenLock", back_populates="user", lazy="raise")
    investments = relationship("Investment", back_populates="user", lazy="raise")

    def __repr__(self):
        return f"<User {self.id[:8]}... ({self.role})>"


class Investment(Base):
    """Investment in a tokenized asset; only read here, for the power breakdown"""
    __tablename__ = "investments"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    status = Column(SQLEnum(InvestmentStatus), nullable=False, default=InvestmentStatus.ACTIVE)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    user = relationship("User", back_populates="investments", lazy="raise")

    def __repr__(self):
        return f"<Investment {self.amount} ({self.status})>"
