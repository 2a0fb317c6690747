"""create creatorhub core tables

Revision ID: 5a1c0e7b2d41
Revises:
Create Date: 2026-09-28 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5a1c0e7b2d41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('role', sa.String(16), nullable=False, server_default='user'),
        sa.Column('stripe_account_id', sa.String(64), nullable=True),
        sa.Column('stripe_connected', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('stripe_charges_enabled', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('stripe_details_submitted', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('notify_post', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notify_membership_expiring', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notify_purchase', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notify_request_completed', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notify_new_request', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notify_product_sale', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'creator_profiles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=False, unique=True, index=True),
        sa.Column('display_name', sa.String(128), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('profile_image', sa.Text(), nullable=True),
        sa.Column('is_profile_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stripe_charges_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'creator_profile_photos',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=False, index=True),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=False, index=True),
        sa.Column('title', sa.String(256), nullable=True),
        sa.Column('product_type', sa.String(32), nullable=False, server_default='purchase'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'stripe_connect',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=False, unique=True),
        sa.Column('account_id', sa.String(64), nullable=False),
        sa.Column('details_submitted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('charges_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payouts_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'memberships',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('buyer_id', sa.Integer(), nullable=False, index=True),
        sa.Column('creator_id', sa.Integer(), nullable=False, index=True),
        sa.Column('product_id', sa.Integer(), nullable=False, index=True),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('current_period_end', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(64), nullable=True),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('buyer_id', sa.Integer(), nullable=False, index=True),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(32), nullable=False, server_default='paid'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'custom_requests',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('buyer_id', sa.Integer(), nullable=False, index=True),
        sa.Column('creator_id', sa.Integer(), nullable=False, index=True),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('custom_requests')
    op.drop_table('orders')
    op.drop_table('memberships')
    op.drop_table('stripe_connect')
    op.drop_table('products')
    op.drop_table('creator_profile_photos')
    op.drop_table('creator_profiles')
    op.drop_table('users')
