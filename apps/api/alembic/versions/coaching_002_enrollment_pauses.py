"""enrollment pause history

Revision ID: coaching_002
Revises: coaching_001
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'coaching_002'
down_revision: Union[str, None] = 'coaching_001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'enrollment_pause',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('enrollment_id', sa.Uuid(), sa.ForeignKey('enrollment.id'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('member.id'), nullable=False),
        sa.Column('paused_on', sa.Date(), nullable=False),
        sa.Column('resumed_on', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_enrollment_pause_user_id', 'enrollment_pause', ['user_id'])
    op.create_index('ix_enrollment_pause_enrollment_id', 'enrollment_pause', ['enrollment_id'])


def downgrade() -> None:
    op.drop_index('ix_enrollment_pause_enrollment_id', 'enrollment_pause')
    op.drop_index('ix_enrollment_pause_user_id', 'enrollment_pause')
    op.drop_table('enrollment_pause')
