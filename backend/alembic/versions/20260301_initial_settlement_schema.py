"""initial_settlement_schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-03-01

Creates the campaign, bracket, pledge, payment intent, invoice and
fulfillment tables. Status columns are VARCHAR holding the lowercase enum
value. campaigns, invoices and payment_intents carry a version column used
for optimistic locking.

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'campaigns',
        sa.Column('campaign_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('supplier_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('product_details', postgresql.JSONB(), nullable=True),
        sa.Column('target_quantity', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('grace_period_end_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('end_date >= start_date', name='chk_campaign_dates'),
        sa.CheckConstraint('target_quantity > 0', name='chk_campaign_target_positive'),
    )
    op.create_index('idx_campaigns_status', 'campaigns', ['status'])
    op.create_index('idx_campaigns_status_end_date', 'campaigns', ['status', 'end_date'])

    op.create_table(
        'discount_brackets',
        sa.Column('bracket_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('campaign_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('campaigns.campaign_id'), nullable=False),
        sa.Column('min_quantity', sa.Integer(), nullable=False),
        sa.Column('max_quantity', sa.Integer(), nullable=True),
        sa.Column('unit_price', sa.Numeric(19, 4), nullable=False),
        sa.Column('bracket_order', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('min_quantity >= 0', name='chk_bracket_min_non_negative'),
        sa.CheckConstraint('unit_price > 0', name='chk_bracket_price_positive'),
        sa.CheckConstraint('max_quantity IS NULL OR max_quantity > min_quantity',
                           name='chk_bracket_range'),
    )
    op.create_index('idx_brackets_campaign_order', 'discount_brackets',
                    ['campaign_id', 'bracket_order'], unique=True)

    op.create_table(
        'pledges',
        sa.Column('pledge_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('campaign_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('campaigns.campaign_id'), nullable=False),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('committed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('quantity > 0', name='chk_pledge_quantity_positive'),
    )
    op.create_index('idx_pledges_campaign_org', 'pledges',
                    ['campaign_id', 'organization_id'], unique=True)
    op.create_index('idx_pledges_campaign_status', 'pledges', ['campaign_id', 'status'])

    op.create_table(
        'payment_intents',
        sa.Column('payment_intent_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('campaign_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('campaigns.campaign_id'), nullable=False),
        sa.Column('pledge_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('pledges.pledge_id'), nullable=False, unique=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Numeric(19, 4), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('retry_count BETWEEN 0 AND 3', name='chk_payment_retry_count'),
        sa.CheckConstraint('amount >= 0', name='chk_payment_amount_non_negative'),
    )
    op.create_index('idx_payment_intents_campaign', 'payment_intents', ['campaign_id'])
    op.create_index('idx_payment_intents_status', 'payment_intents', ['status'])

    op.create_table(
        'invoices',
        sa.Column('invoice_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('campaign_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('campaigns.campaign_id'), nullable=False),
        sa.Column('pledge_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('pledges.pledge_id'), nullable=False, unique=True),
        sa.Column('payment_intent_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('payment_intents.payment_intent_id'), nullable=True, unique=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('invoice_number', sa.String(50), nullable=False, unique=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(19, 4), nullable=False),
        sa.Column('amount', sa.Numeric(19, 4), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('paid_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('amount >= 0', name='chk_invoice_amount_non_negative'),
        sa.CheckConstraint('due_date >= issue_date', name='chk_invoice_due_date'),
    )
    op.create_index('idx_invoices_campaign', 'invoices', ['campaign_id'])
    op.create_index('idx_invoices_status_due_date', 'invoices', ['status', 'due_date'])

    op.create_table(
        'campaign_fulfillments',
        sa.Column('fulfillment_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('campaign_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('campaigns.campaign_id'), nullable=False),
        sa.Column('pledge_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('pledges.pledge_id'), nullable=False),
        sa.Column('delivery_status', sa.String(20), nullable=False),
        *_timestamps(),
    )
    op.create_index('idx_fulfillments_campaign', 'campaign_fulfillments', ['campaign_id'])
    op.create_index('idx_fulfillments_pledge', 'campaign_fulfillments', ['pledge_id'])


def downgrade() -> None:
    op.drop_table('campaign_fulfillments')
    op.drop_table('invoices')
    op.drop_table('payment_intents')
    op.drop_table('pledges')
    op.drop_table('discount_brackets')
    op.drop_table('campaigns')
