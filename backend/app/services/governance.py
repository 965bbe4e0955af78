"""Governance proposals and the voting state machine."""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol

import structlog
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.clock import Clock, utcnow, as_naive_utc
from app.errors import (
    AlreadyVotedError,
    InsufficientVotingPowerError,
    InvalidOptionError,
    NoVotingPowerError,
    NotFoundError,
    ValidationError,
    VotingClosedError,
)
from app.models.activity import ActivityType
from app.models.database import atomic, store_errors
from app.models.governance import GovernanceOption, GovernanceProposal, GovernanceVote
from app.services.activity import ActivityService
from app.services.voting_power import floor_power

logger = structlog.get_logger()

MIN_PROPOSAL_VOTING_POWER = 100
MIN_VOTING_PERIOD = timedelta(hours=24)
PROPOSAL_STATUSES = ("active", "completed", "all")


class VotingPowerSource(Protocol):
    async def calculate(self, user_id: str) -> float: ...


class VoteAttestor(Protocol):
    async def attest_vote(self, vote: GovernanceVote) -> Optional[str]: ...


@dataclass
class OptionView:
    id: str
    text: str
    vote_count: float
    percentage: float


@dataclass
class UserVoteView:
    option_id: str
    voting_power: float


@dataclass
class ProposalView:
    proposal: GovernanceProposal
    options: List[OptionView]
    vote_count: int
    total_votes: float
    is_active: bool
    user_vote: Optional[UserVoteView] = None


@dataclass
class ProposalPage:
    items: List[ProposalView]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


@dataclass
class VotingHistoryItem:
    vote: GovernanceVote
    proposal_title: str
    proposal_end_date: datetime
    option_text: str


@dataclass
class VotingHistoryPage:
    items: List[VotingHistoryItem] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


class GovernanceService:
    """
    Proposal store and voting state machine.

    Voting power comes from an injected source so this module never imports
    the ledger side. All reads and writes go through the injected session.
    """

    def __init__(
        self,
        db: AsyncSession,
        voting_power: VotingPowerSource,
        activity: Optional[ActivityService] = None,
        attestor: Optional[VoteAttestor] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.voting_power = voting_power
        self.activity = activity or ActivityService(db)
        self.attestor = attestor
        self.clock = clock

    async def get_voting_power(self, user_id: str) -> int:
        """Canonical voting power floored to an integer vote weight"""
        return floor_power(await self.voting_power.calculate(user_id))

    async def create_proposal(
        self,
        creator_id: str,
        title: str,
        description: str,
        options: List[str],
        end_date: datetime,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> ProposalView:
        """Create a proposal with its options; creator needs 100 voting power"""
        now = self.clock()
        end_date = as_naive_utc(end_date)
        option_texts = self._validate_proposal(title, description, options, end_date, now)

        async with atomic(self.db, "create governance proposal", creator_id=creator_id, title=title):
            voting_power = await self.get_voting_power(creator_id)
            if voting_power < MIN_PROPOSAL_VOTING_POWER:
                raise InsufficientVotingPowerError(
                    f"Insufficient voting power to create a proposal. "
                    f"Minimum {MIN_PROPOSAL_VOTING_POWER} required."
                )

            proposal = GovernanceProposal(
                title=title,
                description=description,
                category=category,
                tags=tags,
                creator_id=creator_id,
                end_date=end_date,
                created_at=now,
            )
            self.db.add(proposal)
            await self.db.flush()

            created_options = [
                GovernanceOption(proposal_id=proposal.id, text=text, position=position, vote_count=0.0)
                for position, text in enumerate(option_texts)
            ]
            self.db.add_all(created_options)
            await self.db.flush()

            await self.activity.record(
                user_id=creator_id,
                activity_type=ActivityType.PROPOSAL_CREATE,
                reference_id=proposal.id,
                reference_type="proposal",
                data={"title": title, "end_date": end_date.isoformat(), "options": option_texts},
            )

        logger.info("Governance proposal created", proposal_id=proposal.id, creator_id=creator_id)

        return ProposalView(
            proposal=proposal,
            options=[OptionView(id=o.id, text=o.text, vote_count=0.0, percentage=0.0) for o in created_options],
            vote_count=0,
            total_votes=0.0,
            is_active=proposal.is_active(now),
        )

    async def get_proposals(
        self,
        status: str = "all",
        category: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        viewer_id: Optional[str] = None,
    ) -> ProposalPage:
        """List proposals newest first, filtered by derived status and category"""
        if status not in PROPOSAL_STATUSES:
            raise ValidationError("Status must be active, completed or all")
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be positive")

        now = self.clock()
        conditions = []
        if status == "active":
            conditions.append(GovernanceProposal.end_date > now)
        elif status == "completed":
            conditions.append(GovernanceProposal.end_date <= now)
        if category:
            conditions.append(GovernanceProposal.category == category)

        async with store_errors("list governance proposals", status=status, category=category):
            total_result = await self.db.execute(
                select(func.count(GovernanceProposal.id)).where(*conditions)
            )
            total = total_result.scalar_one()

            result = await self.db.execute(
                select(GovernanceProposal)
                .where(*conditions)
                .order_by(GovernanceProposal.created_at.desc(), GovernanceProposal.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .execution_options(populate_existing=True)
            )
            proposals = list(result.scalars().all())

            items = await self._build_views(proposals, viewer_id, now)
        return ProposalPage(items=items, total=total, page=page, limit=limit)

    async def get_proposal_by_id(self, proposal_id: str, viewer_id: Optional[str] = None) -> ProposalView:
        """Get one proposal with per-option percentages"""
        async with store_errors("get governance proposal", proposal_id=proposal_id):
            result = await self.db.execute(
                select(GovernanceProposal)
                .where(GovernanceProposal.id == proposal_id)
                .execution_options(populate_existing=True)
            )
            proposal = result.scalar_one_or_none()
            if proposal is None:
                raise NotFoundError("Governance proposal not found")

            views = await self._build_views([proposal], viewer_id, self.clock())
            return views[0]

    async def get_categories(self) -> List[str]:
        """Distinct non-null proposal categories"""
        async with store_errors("get proposal categories"):
            result = await self.db.execute(
                select(GovernanceProposal.category)
                .where(GovernanceProposal.category.is_not(None))
                .distinct()
                .order_by(GovernanceProposal.category)
            )
            return [c for c in result.scalars().all() if c]

    async def vote(self, user_id: str, proposal_id: str, option_id: str) -> GovernanceVote:
        """Cast a user's single vote on a proposal.

        All checks and both writes (vote row, relative tally increment) run
        in one transaction with the proposal row locked.
        """
        now = self.clock()

        async with atomic(
            self.db, "cast vote",
            user_id=user_id, proposal_id=proposal_id, option_id=option_id,
        ):
            result = await self.db.execute(
                select(GovernanceProposal)
                .where(GovernanceProposal.id == proposal_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            proposal = result.scalar_one_or_none()
            if proposal is None:
                raise NotFoundError("Governance proposal not found")

            if not proposal.is_active(now):
                raise VotingClosedError()

            option_ids = await self.db.execute(
                select(GovernanceOption.id).where(GovernanceOption.proposal_id == proposal_id)
            )
            if option_id not in set(option_ids.scalars().all()):
                raise InvalidOptionError()

            existing = await self.db.execute(
                select(GovernanceVote.id).where(
                    GovernanceVote.user_id == user_id,
                    GovernanceVote.proposal_id == proposal_id,
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise AlreadyVotedError()

            voting_power = await self.get_voting_power(user_id)
            if voting_power <= 0:
                raise NoVotingPowerError()

            vote = GovernanceVote(
                user_id=user_id,
                proposal_id=proposal_id,
                option_id=option_id,
                voting_power=voting_power,
                tx_signature=None,
                created_at=now,
            )
            self.db.add(vote)
            try:
                await self.db.flush()
            except IntegrityError as e:
                raise AlreadyVotedError() from e

            await self.db.execute(
                update(GovernanceOption)
                .where(GovernanceOption.id == option_id)
                .values(vote_count=GovernanceOption.vote_count + voting_power)
                .execution_options(synchronize_session=False)
            )

            await self.activity.record(
                user_id=user_id,
                activity_type=ActivityType.VOTE,
                amount=voting_power,
                reference_id=vote.id,
                reference_type="vote",
                data={"proposal_id": proposal_id, "option_id": option_id},
            )

        logger.info(
            "Vote cast successfully",
            user_id=user_id,
            proposal_id=proposal_id,
            option_id=option_id,
            voting_power=voting_power,
        )

        if self.attestor is not None:
            await self._attach_attestation(vote)

        return vote

    async def get_user_voting_history(self, user_id: str, page: int = 1, limit: int = 10) -> VotingHistoryPage:
        """A user's votes newest first, with proposal and option context"""
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be positive")

        async with store_errors("get voting history", user_id=user_id):
            total_result = await self.db.execute(
                select(func.count(GovernanceVote.id)).where(GovernanceVote.user_id == user_id)
            )
            total = total_result.scalar_one()

            result = await self.db.execute(
                select(
                    GovernanceVote,
                    GovernanceProposal.title,
                    GovernanceProposal.end_date,
                    GovernanceOption.text,
                )
                .join(GovernanceProposal, GovernanceProposal.id == GovernanceVote.proposal_id)
                .join(GovernanceOption, GovernanceOption.id == GovernanceVote.option_id)
                .where(GovernanceVote.user_id == user_id)
                .order_by(GovernanceVote.created_at.desc(), GovernanceVote.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            items = [
                VotingHistoryItem(vote=vote, proposal_title=title, proposal_end_date=end_date, option_text=text)
                for vote, title, end_date, text in result.all()
            ]
            return VotingHistoryPage(items=items, total=total, page=page, limit=limit)

    def _validate_proposal(
        self,
        title: str,
        description: str,
        options: List[str],
        end_date: datetime,
        now: datetime,
    ) -> List[str]:
        if not title or not title.strip():
            raise ValidationError("Title is required")
        if not description or not description.strip():
            raise ValidationError("Description is required")
        if len(options) < 2:
            raise ValidationError("At least 2 options are required")

        if not all(isinstance(option, str) and option.strip() for option in options):
            raise ValidationError("Options must be non-empty strings")
        # Exact, case-sensitive comparison; "Yes" and "Yes " are distinct options
        if len(set(options)) != len(options):
            raise ValidationError("Options must be unique")

        if end_date < now + MIN_VOTING_PERIOD:
            raise ValidationError("End date must be at least 24 hours from now")
        return list(options)

    async def _build_views(
        self,
        proposals: List[GovernanceProposal],
        viewer_id: Optional[str],
        now: datetime,
    ) -> List[ProposalView]:
        if not proposals:
            return []
        ids = [p.id for p in proposals]

        option_rows = await self.db.execute(
            select(GovernanceOption)
            .where(GovernanceOption.proposal_id.in_(ids))
            .order_by(GovernanceOption.proposal_id, GovernanceOption.position)
            .execution_options(populate_existing=True)
        )
        options_by_proposal: Dict[str, List[GovernanceOption]] = {}
        for option in option_rows.scalars().all():
            options_by_proposal.setdefault(option.proposal_id, []).append(option)

        count_rows = await self.db.execute(
            select(GovernanceVote.proposal_id, func.count(GovernanceVote.id))
            .where(GovernanceVote.proposal_id.in_(ids))
            .group_by(GovernanceVote.proposal_id)
        )
        vote_counts = dict(count_rows.all())

        viewer_votes: Dict[str, UserVoteView] = {}
        if viewer_id:
            vote_rows = await self.db.execute(
                select(GovernanceVote.proposal_id, GovernanceVote.option_id, GovernanceVote.voting_power)
                .where(GovernanceVote.user_id == viewer_id, GovernanceVote.proposal_id.in_(ids))
            )
            viewer_votes = {
                row.proposal_id: UserVoteView(option_id=row.option_id, voting_power=row.voting_power)
                for row in vote_rows.all()
            }

        views = []
        for proposal in proposals:
            options = options_by_proposal.get(proposal.id, [])
            total_votes = sum(o.vote_count for o in options)
            views.append(ProposalView(
                proposal=proposal,
                options=[
                    OptionView(
                        id=o.id,
                        text=o.text,
                        vote_count=o.vote_count,
                        percentage=(o.vote_count / total_votes * 100) if total_votes > 0 else 0.0,
                    )
                    for o in options
                ],
                vote_count=vote_counts.get(proposal.id, 0),
                total_votes=total_votes,
                is_active=proposal.is_active(now),
                user_vote=viewer_votes.get(proposal.id),
            ))
        return views

    async def _attach_attestation(self, vote: GovernanceVote) -> None:
        """Store an on-chain attestation signature; never undoes the committed vote.

        The committed vote is detached first so a failed second commit (and
        its rollback) cannot expire the instance handed back to the caller.
        """
        self.db.expunge(vote)
        try:
            signature = await self.attestor.attest_vote(vote)
        except Exception as e:
            logger.warning("Vote attestation failed", vote_id=vote.id, error=str(e))
            return
        if not signature:
            return

        try:
            await self.db.execute(
                update(GovernanceVote)
                .where(GovernanceVote.id == vote.id)
                .values(tx_signature=signature)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.warning("Failed to store vote attestation", vote_id=vote.id, error=str(e))
            try:
                await self.db.rollback()
            except SQLAlchemyError as rollback_error:
                logger.warning(
                    "Rollback after attestation failure failed",
                    vote_id=vote.id,
                    error=str(rollback_error),
                )
            return

        vote.tx_signature = signature
        logger.info("Vote attested on-chain", vote_id=vote.id, signature=signature)
