"""Typed failures raised by the ledger and governance services.

Every error carries the HTTP status the API layer answers with, so routes
never translate them by hand. See ``app.main`` for the exception handler.
"""
from typing import Optional


class GovernanceError(Exception):
    """Base class for expected, caller-recoverable failures"""

    status_code: int = 400
    code: str = "governance_error"
    default_message: str = "Governance operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(GovernanceError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"


class InsufficientBalanceError(GovernanceError):
    code = "insufficient_balance"
    default_message = "Insufficient token balance"


class InsufficientVotingPowerError(GovernanceError):
    status_code = 403
    code = "insufficient_voting_power"
    default_message = "Insufficient voting power"


class SelfDelegationError(GovernanceError):
    code = "self_delegation"
    default_message = "Cannot delegate to yourself"


class RecipientNotFoundError(GovernanceError):
    status_code = 404
    code = "recipient_not_found"
    default_message = "Receiving delegation user not found"


class VotingClosedError(GovernanceError):
    code = "voting_closed"
    default_message = "Voting period for this proposal has ended"


class InvalidOptionError(GovernanceError):
    code = "invalid_option"
    default_message = "Invalid voting option"


class AlreadyVotedError(GovernanceError):
    status_code = 409
    code = "already_voted"
    default_message = "You have already voted on this proposal"


class NoVotingPowerError(GovernanceError):
    code = "no_voting_power"
    default_message = "You do not have any voting power"


class ForbiddenError(GovernanceError):
    status_code = 403
    code = "forbidden"
    default_message = "Unauthorized access"


class ValidationError(GovernanceError):
    code = "validation_error"
    default_message = "Invalid input"


class StoreUnavailableError(GovernanceError):
    status_code = 503
    code = "store_unavailable"
    default_message = "Data store unavailable"
