"""stake_leaderboard_schema

Competitions, deposit history and per-competition leaderboard with
per-deposit contributions.

Revision ID: a1c4e7f2b9d3
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c4e7f2b9d3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 1. competitions (at most one ACTIVE row)
    op.create_table(
        'competitions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('competition_id', sa.String(64), nullable=False, unique=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('winners', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        'uq_competitions_single_active', 'competitions', ['status'],
        unique=True, postgresql_where=sa.text("status = 'ACTIVE'"),
    )

    # 2. deposits (append-only history, one row per tx digest)
    op.create_table(
        'deposits',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('wallet', sa.String(80), nullable=False),
        sa.Column('pool_name', sa.String(64), nullable=False),
        sa.Column('pool_type', sa.String(512), nullable=False),
        sa.Column('lp_amount', sa.Numeric(40, 0), nullable=False),
        sa.Column('usd_value', sa.Numeric(), nullable=False),
        sa.Column('timestamp', sa.BigInteger(), nullable=False),
        sa.Column('tx_digest', sa.String(64), nullable=False, unique=True),
        sa.Column('competition_id', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('idx_deposits_wallet_comp', 'deposits', ['wallet', 'competition_id'])
    op.create_index('idx_deposits_comp_time', 'deposits', ['competition_id', 'timestamp'])

    # 3. leaderboard totals
    op.create_table(
        'leaderboard',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('wallet', sa.String(80), nullable=False),
        sa.Column('competition_id', sa.String(64), nullable=False),
        sa.Column('total_usd', sa.Numeric(), nullable=False),
        sa.Column('last_updated', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('wallet', 'competition_id', name='uq_leaderboard_wallet_comp'),
    )
    op.create_index('idx_leaderboard_comp_total', 'leaderboard', ['competition_id', 'total_usd'])

    # 4. leaderboard_deposits (removed with their entry)
    op.create_table(
        'leaderboard_deposits',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'entry_id', sa.Integer(),
            sa.ForeignKey('leaderboard.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('pool_name', sa.String(64), nullable=False),
        sa.Column('usd_value', sa.Numeric(), nullable=False),
        sa.Column('tx_digest', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('idx_leaderboard_deposits_entry', 'leaderboard_deposits', ['entry_id'])


def downgrade() -> None:
    op.drop_index('idx_leaderboard_deposits_entry', 'leaderboard_deposits')
    op.drop_table('leaderboard_deposits')
    op.drop_index('idx_leaderboard_comp_total', 'leaderboard')
    op.drop_table('leaderboard')
    op.drop_index('idx_deposits_comp_time', 'deposits')
    op.drop_index('idx_deposits_wallet_comp', 'deposits')
    op.drop_table('deposits')
    op.drop_index('uq_competitions_single_active', 'competitions')
    op.drop_table('competitions')
