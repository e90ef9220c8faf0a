"""Create plan catalog, subscriptions, usage ledger and webhook idempotency tables

Revision ID: 0001_subscription_lifecycle
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_subscription_lifecycle'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the lifecycle tables."""

    op.create_table(
        'plans',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('tier', sa.String(20), nullable=False),
        sa.Column('description', sa.Text()),

        # Pricing
        sa.Column('price_monthly', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('price_annual', sa.Numeric(12, 2)),
        sa.Column('currency', sa.String(3), nullable=False, server_default='COP'),

        # Feature limits (NULL = unlimited)
        sa.Column('max_contacts', sa.Integer),
        sa.Column('max_users', sa.Integer),
        sa.Column('max_pipelines', sa.Integer),
        sa.Column('max_deals', sa.Integer),
        sa.Column('max_storage_gb', sa.Integer),

        # PayPal plan ids
        sa.Column('paypal_plan_id_monthly', sa.String(100)),
        sa.Column('paypal_plan_id_annual', sa.String(100)),

        # Display
        sa.Column('active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('is_featured', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_plans_code', 'plans', ['code'], unique=True)
    op.create_index('ix_plans_tier', 'plans', ['tier'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('organization_id', sa.BigInteger, nullable=False),
        sa.Column('plan_id', sa.Uuid(), sa.ForeignKey('plans.id'), nullable=False),

        # Lifecycle
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('billing_period', sa.String(20), nullable=False, server_default='MONTHLY'),
        sa.Column('status_changed_at', sa.DateTime(timezone=True)),

        # Trial window
        sa.Column('trial_start_date', sa.DateTime(timezone=True)),
        sa.Column('trial_end_date', sa.DateTime(timezone=True)),
        sa.Column('is_trial_used', sa.Boolean, nullable=False, server_default='false'),

        # PayPal linkage
        sa.Column('paypal_subscription_id', sa.String(100)),
        sa.Column('paypal_payer_id', sa.String(100)),
        sa.Column('paypal_agreement_id', sa.String(100)),
        sa.Column('paypal_email', sa.String(255)),

        # Billing window
        sa.Column('current_period_start', sa.DateTime(timezone=True)),
        sa.Column('current_period_end', sa.DateTime(timezone=True)),
        sa.Column('next_billing_date', sa.DateTime(timezone=True)),
        sa.Column('canceled_at', sa.DateTime(timezone=True)),
        sa.Column('ended_at', sa.DateTime(timezone=True)),

        sa.Column('amount', sa.Numeric(12, 2)),
        sa.Column('currency', sa.String(3), nullable=False, server_default='COP'),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_subscriptions_organization_id', 'subscriptions', ['organization_id'], unique=True)
    op.create_index('ix_subscriptions_plan_id', 'subscriptions', ['plan_id'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])
    op.create_index('ix_subscriptions_trial_end_date', 'subscriptions', ['trial_end_date'])
    op.create_index('ix_subscriptions_paypal_subscription_id', 'subscriptions', ['paypal_subscription_id'])

    op.create_table(
        'usage_records',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('subscription_id', sa.Uuid(), sa.ForeignKey('subscriptions.id'), nullable=False),
        sa.Column('feature_code', sa.String(50), nullable=False),
        sa.Column('usage_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('plan_limit', sa.Integer),
        sa.Column('usage_percentage', sa.Numeric(7, 2), nullable=False, server_default='0'),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('limit_exceeded', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    # Latest-record lookups per (subscription, feature)
    op.create_index(
        'ix_usage_records_subscription_feature_recorded',
        'usage_records',
        ['subscription_id', 'feature_code', 'recorded_at'],
    )

    op.create_table(
        'processed_webhook_events',
        sa.Column('event_id', sa.String(255), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column(
            'processed_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
        ),
    )
    # Index for cleanup queries (delete events older than X days)
    op.create_index(
        'ix_processed_webhook_events_processed_at',
        'processed_webhook_events',
        ['processed_at'],
    )


def downgrade() -> None:
    op.drop_index('ix_processed_webhook_events_processed_at')
    op.drop_table('processed_webhook_events')
    op.drop_index('ix_usage_records_subscription_feature_recorded')
    op.drop_table('usage_records')
    op.drop_table('subscriptions')
    op.drop_table('plans')
