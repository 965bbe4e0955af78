"""Governance API endpoints"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import CurrentUser, get_current_user, get_governance_service, get_optional_user
from app.models.governance import GovernanceVote
from app.schemas.governance import (
    CategoriesResponse,
    CreateProposalRequest,
    GovernanceVotingPowerResponse,
    OptionResponse,
    PageMeta,
    ProposalListResponse,
    ProposalResponse,
    ProposalStatusFilter,
    UserVoteResponse,
    VoteRequest,
    VoteResponse,
    VoteResultResponse,
    VotingHistoryEntry,
    VotingHistoryResponse,
)
from app.services.governance import GovernanceService, ProposalView

router = APIRouter()


def _proposal_to_response(view: ProposalView) -> ProposalResponse:
    """Convert a proposal view to the response schema"""
    p = view.proposal
    return ProposalResponse(
        id=p.id,
        title=p.title,
        description=p.description,
        category=p.category,
        tags=p.tags,
        creator_id=p.creator_id,
        end_date=p.end_date,
        created_at=p.created_at,
        options=[
            OptionResponse(id=o.id, text=o.text, vote_count=o.vote_count, percentage=o.percentage)
            for o in view.options
        ],
        vote_count=view.vote_count,
        total_votes=view.total_votes,
        is_active=view.is_active,
        user_vote=(
            UserVoteResponse(option_id=view.user_vote.option_id, voting_power=view.user_vote.voting_power)
            if view.user_vote else None
        ),
    )


def _vote_to_response(vote: GovernanceVote) -> VoteResponse:
    return VoteResponse(
        id=vote.id,
        user_id=vote.user_id,
        proposal_id=vote.proposal_id,
        option_id=vote.option_id,
        voting_power=vote.voting_power,
        tx_signature=vote.tx_signature,
        created_at=vote.created_at,
    )


@router.post("/proposals", response_model=ProposalResponse, status_code=201)
async def create_proposal(
    request: CreateProposalRequest,
    user: CurrentUser = Depends(get_current_user),
    governance: GovernanceService = Depends(get_governance_service),
):
    """Create a new governance proposal"""
    view = await governance.create_proposal(
        creator_id=user.id,
        title=request.title,
        description=request.description,
        options=request.options,
        end_date=request.end_date,
        category=request.category,
        tags=request.tags,
    )
    return _proposal_to_response(view)


@router.get("/proposals", response_model=ProposalListResponse)
async def list_proposals(
    status: ProposalStatusFilter = ProposalStatusFilter.ALL,
    category: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: Optional[CurrentUser] = Depends(get_optional_user),
    governance: GovernanceService = Depends(get_governance_service),
):
    """List governance proposals, optionally filtered by status and category"""
    result = await governance.get_proposals(
        status=status.value,
        category=category,
        page=page,
        limit=limit,
        viewer_id=user.id if user else None,
    )
    return ProposalListResponse(
        data=[_proposal_to_response(v) for v in result.items],
        meta=PageMeta(total=result.total, page=result.page, limit=result.limit, total_pages=result.total_pages),
    )


@router.get("/proposals/{proposal_id}", response_model=ProposalResponse)
async def get_proposal(
    proposal_id: str,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    governance: GovernanceService = Depends(get_governance_service),
):
    """Get a specific proposal with option percentages"""
    view = await governance.get_proposal_by_id(proposal_id, viewer_id=user.id if user else None)
    return _proposal_to_response(view)


@router.post("/proposals/{proposal_id}/vote", response_model=VoteResultResponse)
async def vote_on_proposal(
    proposal_id: str,
    request: VoteRequest,
    user: CurrentUser = Depends(get_current_user),
    governance: GovernanceService = Depends(get_governance_service),
):
    """Cast the caller's vote with their current voting power"""
    vote = await governance.vote(user.id, proposal_id, request.option_id)
    return VoteResultResponse(data=_vote_to_response(vote))


@router.get("/categories", response_model=CategoriesResponse)
async def get_categories(governance: GovernanceService = Depends(get_governance_service)):
    """Get all proposal categories in use"""
    return CategoriesResponse(data=await governance.get_categories())


@router.get("/voting-power", response_model=GovernanceVotingPowerResponse)
async def get_my_voting_power(
    user: CurrentUser = Depends(get_current_user),
    governance: GovernanceService = Depends(get_governance_service),
):
    """The caller's vote weight (floored canonical voting power)"""
    return GovernanceVotingPowerResponse(voting_power=await governance.get_voting_power(user.id))


@router.get("/voting-history", response_model=VotingHistoryResponse)
async def get_voting_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    governance: GovernanceService = Depends(get_governance_service),
):
    """The caller's votes, newest first"""
    history = await governance.get_user_voting_history(user.id, page=page, limit=limit)
    return VotingHistoryResponse(
        data=[
            VotingHistoryEntry(
                vote=_vote_to_response(item.vote),
                proposal_title=item.proposal_title,
                proposal_end_date=item.proposal_end_date,
                option_text=item.option_text,
            )
            for item in history.items
        ],
        meta=PageMeta(total=history.total, page=history.page, limit=history.limit, total_pages=history.total_pages),
    )
