"""Governance schemas"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from enum import Enum


class ProposalStatusFilter(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ALL = "all"


class CreateProposalRequest(BaseModel):
    title: str = Field(..., min_length=5, max_length=100)
    description: str = Field(..., min_length=20)
    options: List[str] = Field(..., min_length=2)
    end_date: datetime
    category: Optional[str] = Field(None, max_length=50)
    tags: Optional[List[str]] = None


class VoteRequest(BaseModel):
    option_id: str


class OptionResponse(BaseModel):
    id: str
    text: str
    vote_count: float
    percentage: float = 0.0


class UserVoteResponse(BaseModel):
    option_id: str
    voting_power: float


class ProposalResponse(BaseModel):
    id: str
    title: str
    description: str
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    creator_id: str
    end_date: datetime
    created_at: datetime
    options: List[OptionResponse]
    vote_count: int = 0
    total_votes: float = 0.0
    is_active: bool
    user_vote: Optional[UserVoteResponse] = None


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class ProposalListResponse(BaseModel):
    data: List[ProposalResponse]
    meta: PageMeta


class VoteResponse(BaseModel):
    id: str
    user_id: str
    proposal_id: str
    option_id: str
    voting_power: float
    tx_signature: Optional[str] = None
    created_at: datetime


class VoteResultResponse(BaseModel):
    success: bool = True
    message: str = "Vote cast successfully"
    data: VoteResponse


class GovernanceVotingPowerResponse(BaseModel):
    voting_power: int


class VotingHistoryEntry(BaseModel):
    vote: VoteResponse
    proposal_title: str
    proposal_end_date: datetime
    option_text: str


class VotingHistoryResponse(BaseModel):
    data: List[VotingHistoryEntry]
    meta: PageMeta


class CategoriesResponse(BaseModel):
    data: List[str]
