"""create governance schema

Revision ID: a1f3c9d2e4b7
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1f3c9d2e4b7'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum('USER', 'ADMIN', name='userrole')
investment_status = sa.Enum('ACTIVE', 'COMPLETED', 'CANCELLED', name='investmentstatus')
lock_status = sa.Enum('LOCKED', 'UNLOCKED', name='lockstatus')
activity_type = sa.Enum(
    'TOKEN_LOCK', 'TOKEN_UNLOCK', 'DELEGATION_CREATE', 'DELEGATION_REVOKE', 'PROPOSAL_CREATE', 'VOTE',
    name='activitytype',
)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(100), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('wallet_address', sa.String(44), nullable=True),
        sa.Column('token_balance', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_wallet_address', 'users', ['wallet_address'])

    op.create_table(
        'investments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('status', investment_status, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_investments_user_id', 'investments', ['user_id'])

    op.create_table(
        'token_locks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('lock_date', sa.DateTime(), nullable=False),
        sa.Column('unlock_date', sa.DateTime(), nullable=False),
        sa.Column('status', lock_status, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_token_locks_amount_positive'),
    )
    op.create_index('ix_token_locks_user_id', 'token_locks', ['user_id'])
    op.create_index('ix_token_locks_user_status_unlock', 'token_locks', ['user_id', 'status', 'unlock_date'])

    op.create_table(
        'voting_power_delegations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('from_user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('to_user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('expiry_date', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_delegations_amount_positive'),
        sa.CheckConstraint('from_user_id <> to_user_id', name='ck_delegations_not_self'),
    )
    op.create_index('ix_voting_power_delegations_from_user_id', 'voting_power_delegations', ['from_user_id'])
    op.create_index('ix_voting_power_delegations_to_user_id', 'voting_power_delegations', ['to_user_id'])
    op.create_index('ix_delegations_to_expiry', 'voting_power_delegations', ['to_user_id', 'expiry_date'])

    op.create_table(
        'governance_proposals',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(50), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('creator_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_governance_proposals_category', 'governance_proposals', ['category'])
    op.create_index('ix_governance_proposals_creator_id', 'governance_proposals', ['creator_id'])
    op.create_index('ix_governance_proposals_end_date', 'governance_proposals', ['end_date'])
    op.create_index('ix_governance_proposals_created_at', 'governance_proposals', ['created_at'])

    op.create_table(
        'governance_options',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('proposal_id', sa.String(36), sa.ForeignKey('governance_proposals.id'), nullable=False),
        sa.Column('text', sa.String(200), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('vote_count', sa.Float(), nullable=False, server_default='0'),
    )
    op.create_index('ix_governance_options_proposal_id', 'governance_options', ['proposal_id'])

    op.create_table(
        'governance_votes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('proposal_id', sa.String(36), sa.ForeignKey('governance_proposals.id'), nullable=False),
        sa.Column('option_id', sa.String(36), sa.ForeignKey('governance_options.id'), nullable=False),
        sa.Column('voting_power', sa.Float(), nullable=False),
        sa.Column('tx_signature', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'proposal_id', name='uq_governance_votes_user_proposal'),
    )
    op.create_index('ix_governance_votes_user_id', 'governance_votes', ['user_id'])
    op.create_index('ix_governance_votes_proposal_id', 'governance_votes', ['proposal_id'])
    op.create_index('ix_governance_votes_option_id', 'governance_votes', ['option_id'])

    op.create_table(
        'activity_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('activity_type', activity_type, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('amount', sa.Float(), nullable=True),
        sa.Column('counterparty_id', sa.String(36), nullable=True),
        sa.Column('reference_id', sa.String(36), nullable=True),
        sa.Column('reference_type', sa.String(50), nullable=True),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_activity_records_user_id', 'activity_records', ['user_id'])
    op.create_index('ix_activity_records_activity_type', 'activity_records', ['activity_type'])
    op.create_index('ix_activity_records_created_at', 'activity_records', ['created_at'])
    op.create_index('ix_activity_user_created', 'activity_records', ['user_id', 'created_at'])
    op.create_index('ix_activity_reference', 'activity_records', ['reference_type', 'reference_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('activity_records')
    op.drop_table('governance_votes')
    op.drop_table('governance_options')
    op.drop_table('governance_proposals')
    op.drop_table('voting_power_delegations')
    op.drop_table('token_locks')
    op.drop_table('investments')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (activity_type, lock_status, investment_status, user_role):
        enum_type.drop(bind, checkfirst=True)
