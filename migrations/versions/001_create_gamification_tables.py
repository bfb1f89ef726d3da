"""Create scoring ledger, achievement and season tables.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'activity_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.String(255), nullable=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('activity_type', sa.String(50), nullable=False),
        sa.Column('value', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_activity_log_event_id', 'activity_log', ['event_id'], unique=True)
    op.create_index('idx_activity_log_user_type_time', 'activity_log', ['user_id', 'activity_type', 'occurred_at'])
    op.create_index('idx_activity_log_tenant', 'activity_log', ['tenant_id'])

    op.create_table(
        'scoring_weights',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('activity_type', sa.String(50), nullable=False),
        sa.Column('weight', sa.Integer(), nullable=False),
        sa.Column('activity_weight', sa.Integer(), nullable=True),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_scoring_weights_tenant_type', 'scoring_weights', ['tenant_id', 'activity_type'], unique=True)

    op.create_table(
        'score_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('score_type', sa.String(50), nullable=False),
        sa.Column('time_period', sa.String(20), nullable=False),
        sa.Column('period_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('score_value', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'user_id', 'tenant_id', 'score_type', 'time_period', 'period_start',
            name='uq_score_records_key',
        ),
    )
    op.create_index(
        'idx_score_records_board', 'score_records',
        ['tenant_id', 'time_period', 'period_start', 'score_type'],
    )

    op.create_table(
        'achievement_definitions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(64), nullable=False),
        sa.Column('name', sa.String(128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('icon', sa.String(64), nullable=True),
        sa.Column('badge_color', sa.String(32), nullable=True),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('criteria', postgresql.JSONB(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )

    op.create_table(
        'user_achievements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('achievement_id', sa.Integer(), nullable=False),
        sa.Column('earned_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['achievement_id'], ['achievement_definitions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_user_achievements_user_achievement', 'user_achievements',
        ['user_id', 'achievement_id'], unique=True,
    )
    op.create_index('idx_user_achievements_tenant_user', 'user_achievements', ['tenant_id', 'user_id'])

    op.create_table(
        'user_points',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('total_points', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('points_this_week', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('points_this_month', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('week_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('month_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('longest_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_activity_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_user_points_user_tenant', 'user_points', ['user_id', 'tenant_id'], unique=True)
    op.create_index('idx_user_points_total', 'user_points', ['tenant_id', 'total_points'])

    op.create_table(
        'season_winners',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('season_period', sa.String(32), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('score_value', sa.BigInteger(), nullable=False),
        sa.Column('rank', sa.Integer(), nullable=False),
        sa.Column('medal', sa.String(10), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_season_winners_slot', 'season_winners',
        ['tenant_id', 'season_period', 'category', 'rank'], unique=True,
    )
    op.create_index('idx_season_winners_user', 'season_winners', ['tenant_id', 'user_id'])

    op.create_table(
        'season_rollovers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.String(64), nullable=False),
        sa.Column('season_period', sa.String(32), nullable=False),
        sa.Column('season_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('season_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('state', sa.String(20), nullable=False, server_default='active'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('winners_archived', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('records_reset', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_season_rollovers_tenant_period', 'season_rollovers',
        ['tenant_id', 'season_period'], unique=True,
    )
    op.create_index('idx_season_rollovers_tenant_start', 'season_rollovers', ['tenant_id', 'season_start'])


def downgrade() -> None:
    op.drop_table('season_rollovers')
    op.drop_table('season_winners')
    op.drop_table('user_points')
    op.drop_table('user_achievements')
    op.drop_table('achievement_definitions')
    op.drop_table('score_records')
    op.drop_table('scoring_weights')
    op.drop_table('activity_log')
