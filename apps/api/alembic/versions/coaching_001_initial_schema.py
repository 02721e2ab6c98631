"""coaching engine schema: templates, enrollments, habit ledger, rewards

Revision ID: coaching_001
Revises:
Create Date: 2026-03-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'coaching_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    op.create_table(
        'member',
        sa.Column('id', sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column('email', sa.Text(), nullable=True, unique=True),
        sa.Column('display_name', sa.Text(), nullable=True),
        sa.Column('role', sa.Text(), nullable=False, server_default='member'),
        sa.Column('subscription_tier', sa.Text(), nullable=False, server_default='free'),
        sa.Column('timezone', sa.Text(), nullable=True),
    )

    # Template store (admin-owned)
    op.create_table(
        'routine_template',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.Text(), nullable=True),
        sa.Column('duration_days', sa.Integer(), nullable=False, server_default='14'),
        sa.Column('tier', sa.Text(), nullable=False, server_default='free'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('duration_days >= 1', name='ck_routine_template_duration_positive'),
    )

    op.create_table(
        'habit_template',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('short_description', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('tips', sa.Text(), nullable=True),
        sa.Column('cadence', sa.Text(), nullable=False, server_default='daily'),
        sa.Column('recommended_time', sa.Text(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('day_start', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('day_end', sa.Integer(), nullable=True),
        sa.Column('intensity', sa.Text(), nullable=False, server_default='lite'),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'habit_template_assignment',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('habit_template_id', sa.Uuid(), sa.ForeignKey('habit_template.id'), nullable=False),
        sa.Column('routine_template_id', sa.Text(), sa.ForeignKey('routine_template.id'), nullable=False),
        sa.UniqueConstraint('habit_template_id', 'routine_template_id', name='uq_habit_template_assignment'),
    )
    op.create_index('ix_habit_template_assignment_routine', 'habit_template_assignment', ['routine_template_id'])

    # Enrollments
    op.create_table(
        'enrollment',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('member.id'), nullable=False),
        sa.Column('routine_template_id', sa.Text(), sa.ForeignKey('routine_template.id'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='active'),
        sa.Column('intensity', sa.Text(), nullable=False, server_default='lite'),
        sa.Column('idempotency_key', sa.Text(), nullable=False),
        sa.Column('habits_scheduled', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paused_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'idempotency_key', name='uq_enrollment_user_idempotency_key'),
    )
    op.create_index('ix_enrollment_user_id', 'enrollment', ['user_id'])
    op.create_index('ix_enrollment_status', 'enrollment', ['status'])
    op.create_index(
        'ux_enrollment_one_active_per_user',
        'enrollment',
        ['user_id'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    # Standalone habits (must exist before habit_instance references it)
    op.create_table(
        'standalone_habit',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('member.id'), nullable=False),
        sa.Column('habit_template_id', sa.Uuid(), sa.ForeignKey('habit_template.id'), nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('cadence', sa.Text(), nullable=False, server_default='daily'),
        sa.Column('recommended_time', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_custom', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('anchor_date', sa.Date(), nullable=False),
        _created_at(),
    )
    op.create_index('ix_standalone_habit_user', 'standalone_habit', ['user_id'])
    op.create_index(
        'ux_standalone_habit_user_template',
        'standalone_habit',
        ['user_id', 'habit_template_id'],
        unique=True,
        postgresql_where=sa.text('habit_template_id IS NOT NULL'),
        sqlite_where=sa.text('habit_template_id IS NOT NULL'),
    )

    # Daily execution ledger
    op.create_table(
        'habit_instance',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('member.id'), nullable=False),
        sa.Column('enrollment_id', sa.Uuid(), sa.ForeignKey('enrollment.id'), nullable=True),
        sa.Column('habit_template_id', sa.Uuid(), sa.ForeignKey('habit_template.id'), nullable=True),
        sa.Column('standalone_habit_id', sa.Uuid(), sa.ForeignKey('standalone_habit.id'), nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('cadence', sa.Text(), nullable=False, server_default='daily'),
        sa.Column('scheduled_date', sa.Date(), nullable=False),
        sa.Column('day_number', sa.Integer(), nullable=True),
        sa.Column('is_from_routine', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index('ix_habit_instance_user_date', 'habit_instance', ['user_id', 'scheduled_date'])
    op.create_index('ix_habit_instance_enrollment', 'habit_instance', ['enrollment_id'])
    op.create_index(
        'ux_habit_instance_enrollment_template_date',
        'habit_instance',
        ['user_id', 'enrollment_id', 'habit_template_id', 'scheduled_date'],
        unique=True,
        postgresql_where=sa.text('enrollment_id IS NOT NULL'),
        sqlite_where=sa.text('enrollment_id IS NOT NULL'),
    )
    op.create_index(
        'ux_habit_instance_standalone_date',
        'habit_instance',
        ['user_id', 'standalone_habit_id', 'scheduled_date'],
        unique=True,
        postgresql_where=sa.text('standalone_habit_id IS NOT NULL'),
        sqlite_where=sa.text('standalone_habit_id IS NOT NULL'),
    )

    # Reward ledger (append-only)
    op.create_table(
        'reward_event',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('member.id'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('habit_instance_id', sa.Uuid(), sa.ForeignKey('habit_instance.id'), nullable=True),
        _created_at(),
    )
    op.create_index('ix_reward_event_user', 'reward_event', ['user_id'])
    op.create_index('ix_reward_event_user_created', 'reward_event', ['user_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_reward_event_user_created', 'reward_event')
    op.drop_index('ix_reward_event_user', 'reward_event')
    op.drop_table('reward_event')
    op.drop_index('ux_habit_instance_standalone_date', 'habit_instance')
    op.drop_index('ux_habit_instance_enrollment_template_date', 'habit_instance')
    op.drop_index('ix_habit_instance_enrollment', 'habit_instance')
    op.drop_index('ix_habit_instance_user_date', 'habit_instance')
    op.drop_table('habit_instance')
    op.drop_index('ux_standalone_habit_user_template', 'standalone_habit')
    op.drop_index('ix_standalone_habit_user', 'standalone_habit')
    op.drop_table('standalone_habit')
    op.drop_index('ux_enrollment_one_active_per_user', 'enrollment')
    op.drop_index('ix_enrollment_status', 'enrollment')
    op.drop_index('ix_enrollment_user_id', 'enrollment')
    op.drop_table('enrollment')
    op.drop_index('ix_habit_template_assignment_routine', 'habit_template_assignment')
    op.drop_table('habit_template_assignment')
    op.drop_table('habit_template')
    op.drop_table('routine_template')
    op.drop_table('member')
