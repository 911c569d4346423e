"""create ingestion tables

Revision ID: 3c1e7a9d2b40
Revises:
Create Date: 2026-10-12 14:05:11.402817

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1e7a9d2b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('institutions',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('workspace_id', sa.String(length=36), nullable=False),
    sa.Column('plaid_item_id', sa.String(), nullable=False),
    sa.Column('plaid_institution_id', sa.String(), nullable=True),
    sa.Column('name', sa.String(), nullable=False),
    sa.Column('access_token_encrypted', sa.Text(), nullable=True),
    sa.Column('connection_status', sa.String(), nullable=False),
    sa.Column('last_error', sa.JSON(), nullable=True),
    sa.Column('last_sync_at', sa.DateTime(), nullable=True),
    sa.Column('created_by', sa.String(length=36), nullable=True),
    sa.Column('logo_url', sa.Text(), nullable=True),
    sa.Column('primary_color', sa.String(), nullable=True),
    sa.Column('website_url', sa.String(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_institutions_workspace_id'), 'institutions', ['workspace_id'], unique=False)
    op.create_index(op.f('ix_institutions_plaid_item_id'), 'institutions', ['plaid_item_id'], unique=True)

    op.create_table('bank_accounts',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('institution_id', sa.String(length=36), nullable=False),
    sa.Column('plaid_account_id', sa.String(), nullable=False),
    sa.Column('name', sa.String(), nullable=False),
    sa.Column('mask', sa.String(), nullable=True),
    sa.Column('account_type', sa.String(), nullable=True),
    sa.Column('account_subtype', sa.String(), nullable=True),
    sa.Column('current_balance_cents', sa.BigInteger(), nullable=True),
    sa.Column('available_balance_cents', sa.BigInteger(), nullable=True),
    sa.Column('iso_currency_code', sa.String(length=3), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('last_synced_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['institution_id'], ['institutions.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('institution_id', 'plaid_account_id', name='uix_bank_account_institution_plaid')
    )
    op.create_index(op.f('ix_bank_accounts_institution_id'), 'bank_accounts', ['institution_id'], unique=False)

    op.create_table('feed_transactions',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('workspace_id', sa.String(length=36), nullable=False),
    sa.Column('bank_account_id', sa.String(length=36), nullable=False),
    sa.Column('plaid_transaction_id', sa.String(), nullable=False),
    sa.Column('content_hash', sa.String(), nullable=False),
    sa.Column('amount_cents', sa.BigInteger(), nullable=False),
    sa.Column('direction', sa.String(length=7), nullable=False),
    sa.Column('currency_code', sa.String(length=3), nullable=False),
    sa.Column('transaction_date', sa.Date(), nullable=False),
    sa.Column('authorized_date', sa.Date(), nullable=True),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('status', sa.String(length=7), nullable=False),
    sa.Column('merchant_name', sa.String(), nullable=True),
    sa.Column('merchant_logo_url', sa.Text(), nullable=True),
    sa.Column('merchant_website', sa.String(), nullable=True),
    sa.Column('merchant_entity_id', sa.String(), nullable=True),
    sa.Column('location_address', sa.String(), nullable=True),
    sa.Column('location_city', sa.String(), nullable=True),
    sa.Column('location_region', sa.String(), nullable=True),
    sa.Column('location_postal_code', sa.String(), nullable=True),
    sa.Column('location_country', sa.String(), nullable=True),
    sa.Column('location_lat', sa.Float(), nullable=True),
    sa.Column('location_lon', sa.Float(), nullable=True),
    sa.Column('location_store_number', sa.String(), nullable=True),
    sa.Column('pfc_primary', sa.String(), nullable=True),
    sa.Column('pfc_detailed', sa.String(), nullable=True),
    sa.Column('pfc_confidence', sa.String(), nullable=True),
    sa.Column('category_primary', sa.String(), nullable=True),
    sa.Column('category_detailed', sa.String(), nullable=True),
    sa.Column('payment_method', sa.String(), nullable=True),
    sa.Column('payment_processor', sa.String(), nullable=True),
    sa.Column('payment_reference_number', sa.String(), nullable=True),
    sa.Column('transaction_code', sa.String(), nullable=True),
    sa.Column('created_by', sa.String(length=36), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint('amount_cents >= 0', name='ck_feed_txn_amount_non_negative'),
    sa.CheckConstraint("direction IN ('inflow', 'outflow')", name='ck_feed_txn_direction'),
    sa.ForeignKeyConstraint(['bank_account_id'], ['bank_accounts.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('workspace_id', 'plaid_transaction_id', name='uix_feed_txn_workspace_plaid')
    )
    op.create_index(op.f('ix_feed_transactions_workspace_id'), 'feed_transactions', ['workspace_id'], unique=False)
    op.create_index(op.f('ix_feed_transactions_bank_account_id'), 'feed_transactions', ['bank_account_id'], unique=False)
    op.create_index(op.f('ix_feed_transactions_content_hash'), 'feed_transactions', ['content_hash'], unique=False)

    op.create_table('webhook_events',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('webhook_type', sa.String(), nullable=False),
    sa.Column('webhook_code', sa.String(), nullable=False),
    sa.Column('item_id', sa.String(), nullable=True),
    sa.Column('workspace_id', sa.String(length=36), nullable=True),
    sa.Column('payload', sa.JSON(), nullable=False),
    sa.Column('processed_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_webhook_events_webhook_type'), 'webhook_events', ['webhook_type'], unique=False)
    op.create_index(op.f('ix_webhook_events_item_id'), 'webhook_events', ['item_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_webhook_events_item_id'), table_name='webhook_events')
    op.drop_index(op.f('ix_webhook_events_webhook_type'), table_name='webhook_events')
    op.drop_table('webhook_events')
    op.drop_index(op.f('ix_feed_transactions_content_hash'), table_name='feed_transactions')
    op.drop_index(op.f('ix_feed_transactions_bank_account_id'), table_name='feed_transactions')
    op.drop_index(op.f('ix_feed_transactions_workspace_id'), table_name='feed_transactions')
    op.drop_table('feed_transactions')
    op.drop_index(op.f('ix_bank_accounts_institution_id'), table_name='bank_accounts')
    op.drop_table('bank_accounts')
    op.drop_index(op.f('ix_institutions_plaid_item_id'), table_name='institutions')
    op.drop_index(op.f('ix_institutions_workspace_id'), table_name='institutions')
    op.drop_table('institutions')
