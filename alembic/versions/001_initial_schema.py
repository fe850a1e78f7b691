"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Users table
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Communities table
    op.create_table(
        'communities',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('creator_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('is_free', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stripe_product_id', sa.String(), nullable=True),
        sa.Column('stripe_price_id', sa.String(), nullable=True),
        sa.Column('platform_fee_percentage', sa.Integer(), nullable=False, server_default='12'),
        sa.Column('creator_fee_percentage', sa.Integer(), nullable=False, server_default='88'),
        sa.Column('payout_account_id', sa.String(), nullable=True),
        sa.Column('payout_account_status', sa.String(), nullable=False, server_default='not_configured'),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('allow_new_subscriptions', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['creator_id'], ['users.id'], ),
        sa.UniqueConstraint('name', name='uq_communities_name'),
        sa.CheckConstraint('platform_fee_percentage + creator_fee_percentage = 100', name='ck_communities_fee_split'),
    )
    op.create_index('ix_communities_creator_id', 'communities', ['creator_id'])
    op.create_index('ix_communities_payout_account_id', 'communities', ['payout_account_id'])

    # Community members table (creator is implicit, never stored)
    op.create_table(
        'community_members',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('community_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['community_id'], ['communities.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('community_id', 'user_id', name='uq_community_members_pair'),
    )
    op.create_index('ix_community_members_community_id', 'community_members', ['community_id'])
    op.create_index('ix_community_members_user_id', 'community_members', ['user_id'])

    # Subscriptions table
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('community_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(), nullable=False, server_default='stripe'),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('last_payment_attempt', sa.DateTime(), nullable=True),
        sa.Column('failed_payment_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_paid_invoice_id', sa.String(), nullable=True),
        sa.Column('last_payment_succeeded_at', sa.DateTime(), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(), nullable=True),
        sa.Column('stripe_customer_id', sa.String(), nullable=True),
        sa.Column('stripe_status', sa.String(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['community_id'], ['communities.id'], ),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'])
    op.create_index('ix_subscriptions_community_id', 'subscriptions', ['community_id'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])
    op.create_index('ix_subscriptions_stripe_subscription_id', 'subscriptions', ['stripe_subscription_id'])
    op.create_index('ix_subscriptions_stripe_customer_id', 'subscriptions', ['stripe_customer_id'])
    op.create_index('ix_subscriptions_created_at', 'subscriptions', ['created_at'])
    op.create_index(
        'uq_subscriptions_active_pair',
        'subscriptions',
        ['user_id', 'community_id'],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    # Payouts table
    op.create_table(
        'payouts',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('creator_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('community_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('subscription_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('stripe_connect_account_id', sa.String(), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('platform_fee', sa.Integer(), nullable=False),
        sa.Column('creator_amount', sa.Integer(), nullable=False),
        sa.Column('platform_fee_percentage', sa.Integer(), nullable=False),
        sa.Column('creator_fee_percentage', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('payout_date', sa.DateTime(), nullable=True),
        sa.Column('stripe_transfer_id', sa.String(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stripe_invoice_id', sa.String(), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(), nullable=True),
        sa.Column('stripe_customer_id', sa.String(), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='usd'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['creator_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['community_id'], ['communities.id'], ),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ),
        sa.CheckConstraint('platform_fee + creator_amount = total_amount', name='ck_payouts_split_sum'),
    )
    op.create_index('ix_payouts_creator_id', 'payouts', ['creator_id'])
    op.create_index('ix_payouts_community_id', 'payouts', ['community_id'])
    op.create_index('ix_payouts_subscription_id', 'payouts', ['subscription_id'])
    op.create_index('ix_payouts_stripe_connect_account_id', 'payouts', ['stripe_connect_account_id'])
    op.create_index('ix_payouts_status', 'payouts', ['status'])
    op.create_index('ix_payouts_created_at', 'payouts', ['created_at'])
    op.create_index('ix_payouts_creator_status', 'payouts', ['creator_id', 'status'])
    op.create_index('ix_payouts_community_status', 'payouts', ['community_id', 'status'])

    # Allies table (ordered pair, low < high)
    op.create_table(
        'allies',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('user_low_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('user_high_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_low_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_high_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_low_id', 'user_high_id', name='uq_allies_pair'),
        sa.CheckConstraint('user_low_id <> user_high_id', name='ck_allies_distinct'),
    )
    op.create_index('ix_allies_user_low_id', 'allies', ['user_low_id'])
    op.create_index('ix_allies_user_high_id', 'allies', ['user_high_id'])

    # Stripe price cache
    op.create_table(
        'stripe_prices',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='usd'),
        sa.Column('interval', sa.String(), nullable=False, server_default='month'),
        sa.Column('stripe_price_id', sa.String(), nullable=False),
        sa.Column('stripe_product_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('amount_cents', 'currency', 'interval', name='uq_stripe_prices_amount'),
    )
    op.create_index('ix_stripe_prices_amount_cents', 'stripe_prices', ['amount_cents'])


def downgrade() -> None:
    op.drop_table('stripe_prices')
    op.drop_table('allies')
    op.drop_table('payouts')
    op.drop_table('subscriptions')
    op.drop_table('community_members')
    op.drop_table('communities')
    op.drop_table('users')
