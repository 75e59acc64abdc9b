"""Initial schema - records mirror, carts, orders, webhook log and sync runs

Revision ID: 0001_initial_schema
Revises:
Create Date: 2025-04-08

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True):
    columns = [sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return columns


def upgrade() -> None:
    op.create_table(
        'records',
        sa.Column('id', sa.Integer(), primary_key=True),
        *_timestamps(),
        sa.Column('owner_id', sa.Integer(), nullable=True),
        sa.Column('discogs_listing_id', sa.BigInteger(), nullable=True),
        sa.Column('discogs_release_id', sa.BigInteger(), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('artist', sa.String(), nullable=False),
        sa.Column('label', sa.String()),
        sa.Column('catalog_number', sa.String()),
        sa.Column('year', sa.Integer()),
        sa.Column('format', sa.String()),
        sa.Column('genres', sa.JSON()),
        sa.Column('styles', sa.JSON()),
        sa.Column('cover_image', sa.String()),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('condition', sa.String()),
        sa.Column('sleeve_condition', sa.String()),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(16), nullable=False, server_default='FOR_SALE'),
        sa.Column('notes', sa.Text()),
        sa.Column('location', sa.String()),
        sa.Column('weight', sa.Integer()),
        sa.Column('last_synced_at', sa.DateTime(timezone=True)),
        sa.CheckConstraint('quantity >= 0', name='ck_records_quantity_non_negative'),
        sa.CheckConstraint('price >= 0', name='ck_records_price_non_negative'),
        sa.UniqueConstraint('discogs_listing_id', name='uq_records_discogs_listing_id'),
    )
    op.create_index('ix_records_owner_id', 'records', ['owner_id'])
    op.create_index('ix_records_discogs_release_id', 'records', ['discogs_release_id'])
    op.create_index('ix_records_status', 'records', ['status'])
    op.create_index('ix_records_status_listing', 'records', ['status', 'discogs_listing_id'])

    op.create_table(
        'carts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('user_id', name='uq_carts_user_id'),
    )

    op.create_table(
        'cart_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('cart_id', sa.Integer(), sa.ForeignKey('carts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('record_id', sa.Integer(), sa.ForeignKey('records.id', ondelete='CASCADE'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.UniqueConstraint('cart_id', 'record_id', name='uq_cart_items_cart_record'),
        sa.CheckConstraint('quantity > 0', name='ck_cart_items_quantity_positive'),
    )
    op.create_index('ix_cart_items_cart_id', 'cart_items', ['cart_id'])
    op.create_index('ix_cart_items_record_id', 'cart_items', ['record_id'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('checkout_id', sa.String(), nullable=False),
        sa.Column('payment_intent_id', sa.String(), nullable=True),
        sa.Column('status', sa.String(16), nullable=False, server_default='PENDING'),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='usd'),
        sa.Column('customer_name', sa.String()),
        sa.Column('customer_email', sa.String()),
        sa.Column('shipping_address', sa.JSON()),
        *_timestamps(),
        sa.UniqueConstraint('checkout_id', name='uq_orders_checkout_id'),
        sa.UniqueConstraint('payment_intent_id', name='uq_orders_payment_intent_id'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('record_id', sa.Integer(), sa.ForeignKey('records.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('artist', sa.String(), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_record_id', 'order_items', ['record_id'])

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('source', sa.String(), nullable=False, server_default='stripe'),
        sa.Column('event_id', sa.String()),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('checkout_id', sa.String()),
        sa.Column('payload', sa.JSON()),
        sa.Column('processing_status', sa.String(), nullable=False, server_default='received'),
        sa.Column('error_message', sa.Text()),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_webhook_events_event_id', 'webhook_events', ['event_id'])
    op.create_index('ix_webhook_events_checkout_id', 'webhook_events', ['checkout_id'])

    op.create_table(
        'sync_runs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('mode', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='running'),
        sa.Column('trigger', sa.String()),
        sa.Column('created', sa.Integer(), server_default='0'),
        sa.Column('updated', sa.Integer(), server_default='0'),
        sa.Column('deleted', sa.Integer(), server_default='0'),
        sa.Column('mapping_errors', sa.Integer(), server_default='0'),
        sa.Column('skipped_deletions', sa.Integer(), server_default='0'),
        sa.Column('skipped_duplicates', sa.Integer(), server_default='0'),
        sa.Column('update_failures', sa.Integer(), server_default='0'),
        sa.Column('relinked', sa.Integer(), server_default='0'),
        sa.Column('pages_fetched', sa.Integer(), server_default='0'),
        sa.Column('partial', sa.Boolean(), server_default=sa.false()),
        sa.Column('error_message', sa.Text()),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True)),
    )


def downgrade() -> None:
    op.drop_table('sync_runs')
    op.drop_index('ix_webhook_events_checkout_id', table_name='webhook_events')
    op.drop_index('ix_webhook_events_event_id', table_name='webhook_events')
    op.drop_table('webhook_events')
    op.drop_index('ix_order_items_record_id', table_name='order_items')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_cart_items_record_id', table_name='cart_items')
    op.drop_index('ix_cart_items_cart_id', table_name='cart_items')
    op.drop_table('cart_items')
    op.drop_table('carts')
    op.drop_index('ix_records_status_listing', table_name='records')
    op.drop_index('ix_records_status', table_name='records')
    op.drop_index('ix_records_discogs_release_id', table_name='records')
    op.drop_index('ix_records_owner_id', table_name='records')
    op.drop_table('records')
