"""Governance models"""
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from app.clock import utcnow
from app.models.database import Base
from app.models.user import new_id


class GovernanceProposal(Base):
    """Governance proposal; active while now < end_date"""
    __tablename__ = "governance_proposals"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(50), nullable=True, index=True)
    tags = Column(JSON, nullable=True)
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    end_date = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    # Relationships
    creator = relationship("User", lazy="raise")
    options = relationship(
        "GovernanceOption",
        back_populates="proposal",
        order_by="GovernanceOption.position",
        lazy="raise",
    )
    votes = relationship("GovernanceVote", back_populates="proposal", lazy="raise")

    def is_active(self, now) -> bool:
        return now < self.end_date

    def __repr__(self):
        return f"<GovernanceProposal {self.title!r} ends {self.end_date}>"


class GovernanceOption(Base):
    """Proposal option; vote_count accumulates voting power, not heads"""
    __tablename__ = "governance_options"

    id = Column(String(36), primary_key=True, default=new_id)
    proposal_id = Column(String(36), ForeignKey("governance_proposals.id"), nullable=False, index=True)
    text = Column(String(200), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    vote_count = Column(Float, nullable=False, default=0.0)

    # Relationships
    proposal = relationship("GovernanceProposal", back_populates="options", lazy="raise")

    def __repr__(self):
        return f"<GovernanceOption {self.text!r} ({self.vote_count})>"


class GovernanceVote(Base):
    """Vote record; voting_power is the weight snapshotted at cast time"""
    __tablename__ = "governance_votes"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    proposal_id = Column(String(36), ForeignKey("governance_proposals.id"), nullable=False, index=True)
    option_id = Column(String(36), ForeignKey("governance_options.id"), nullable=False, index=True)
    voting_power = Column(Float, nullable=False)
    tx_signature = Column(String(100), nullable=True)  # informational on-chain attestation
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    proposal = relationship("GovernanceProposal", back_populates="votes", lazy="raise")
    option = relationship("GovernanceOption", lazy="raise")

    __table_args__ = (
        UniqueConstraint("user_id", "proposal_id", name="uq_governance_votes_user_proposal"),
    )

    def __repr__(self):
        return f"<GovernanceVote {self.user_id[:8]}... -> {self.option_id[:8]}... ({self.voting_power})>"
