"""add dedup_key to notifications

Revision ID: c4f2a8e9d013
Revises: 8e3d9b1f6a72
Create Date: 2026-10-09 16:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c4f2a8e9d013'
down_revision: str = '8e3d9b1f6a72'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'notifications',
        sa.Column('dedup_key', sa.String(128), nullable=True),
    )
    # NULL keys never collide, so rows without a key are unaffected
    op.create_unique_constraint(
        'uq_notifications_dedup', 'notifications', ['user_id', 'type', 'dedup_key'],
    )


def downgrade() -> None:
    op.drop_constraint('uq_notifications_dedup', 'notifications', type_='unique')
    op.drop_column('notifications', 'dedup_key')
