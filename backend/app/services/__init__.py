"""Perpetua governance services"""
from .activity import ActivityService
from .ledger import TokenLedger
from .voting_power import VotingPowerCalculator, VotingPowerBreakdown, lock_weight, floor_power
from .governance import GovernanceService, ProposalView, ProposalPage

__all__ = [
    "ActivityService",
    # Token ledger
    "TokenLedger",
    # Voting power
    "VotingPowerCalculator",
    "VotingPowerBreakdown",
    "lock_weight",
    "floor_power",
    # Proposals and voting
    "GovernanceService",
    "ProposalView",
    "ProposalPage",
]
