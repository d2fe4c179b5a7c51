"""create_store_tables

Revision ID: 3f9c2a7d1b04
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f9c2a7d1b04'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    'store_product_status_enum': ('active', 'draft', 'archived', 'out_of_stock'),
    'store_inventory_log_type_enum': ('sale', 'restock', 'adjustment', 'return', 'reserved', 'released'),
    'store_performed_by_type_enum': ('system', 'admin', 'customer', 'api'),
    'store_order_status_enum': ('pending', 'confirmed', 'processing', 'shipped', 'delivered', 'cancelled', 'refunded'),
    'store_payment_status_enum': ('pending', 'paid', 'failed', 'refunded', 'partially_refunded'),
    'store_payment_method_enum': ('razorpay', 'cod', 'bank_transfer', 'other'),
    'store_address_type_enum': ('shipping', 'billing'),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema - Add store tables."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # Products with embedded inventory counters
    op.create_table(
        'store_products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('slug', sa.String(length=200), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(length=500), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('compare_at_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(length=3), server_default='INR', nullable=False),
        sa.Column('status', _enum('store_product_status_enum'), server_default='draft', nullable=False),
        sa.Column('quantity', sa.Integer(), server_default='0', nullable=False),
        sa.Column('reserved_quantity', sa.Integer(), server_default='0', nullable=False),
        sa.Column('track_quantity', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('allow_backorder', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('low_stock_threshold', sa.Integer(), server_default='5', nullable=False),
        sa.Column('sales_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_restock_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_sold_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('quantity >= 0', name='ck_store_products_non_negative_quantity'),
        sa.CheckConstraint('reserved_quantity >= 0', name='ck_store_products_non_negative_reserved'),
        sa.CheckConstraint('sales_count >= 0', name='ck_store_products_non_negative_sales'),
        sa.CheckConstraint('price >= 0', name='ck_store_products_non_negative_price'),
        sa.PrimaryKeyConstraint('id', name='pk_store_products'),
        sa.UniqueConstraint('sku', name='uq_store_products_sku'),
        sa.UniqueConstraint('slug', name='uq_store_products_slug'),
    )

    # Carts
    op.create_table(
        'store_carts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('session_id', sa.String(length=255), nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('tax', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('shipping', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('discount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('total', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('currency', sa.String(length=3), server_default='INR', nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('user_id IS NOT NULL OR session_id IS NOT NULL', name='ck_store_carts_cart_one_owner'),
        sa.PrimaryKeyConstraint('id', name='pk_store_carts'),
        sa.UniqueConstraint('user_id', name='uq_store_carts_user_id'),
        sa.UniqueConstraint('session_id', name='uq_store_carts_session_id'),
    )
    op.create_index('ix_store_carts_expires_at', 'store_carts', ['expires_at'])

    op.create_table(
        'store_cart_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('cart_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('quantity > 0', name='ck_store_cart_items_positive_quantity'),
        sa.ForeignKeyConstraint(['cart_id'], ['store_carts.id'], name='fk_store_cart_items_cart_id_store_carts', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['store_products.id'], name='fk_store_cart_items_product_id_store_products', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_store_cart_items'),
        sa.UniqueConstraint('cart_id', 'product_id', name='unique_cart_product'),
    )

    # Orders
    op.create_table(
        'store_orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_number', sa.String(length=20), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('shipping', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('discount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), server_default='INR', nullable=False),
        sa.Column('shipping_address', postgresql.JSONB(), nullable=False),
        sa.Column('billing_address', postgresql.JSONB(), nullable=False),
        sa.Column('status', _enum('store_order_status_enum'), server_default='pending', nullable=False),
        sa.Column('payment_method', _enum('store_payment_method_enum'), nullable=False),
        sa.Column('payment_status', _enum('store_payment_status_enum'), server_default='pending', nullable=False),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('payment_id', sa.String(length=255), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('idempotency_key', sa.String(length=255), nullable=True),
        sa.Column('cancellation_key', sa.String(length=255), nullable=True),
        sa.Column('tracking_number', sa.String(length=100), nullable=True),
        sa.Column('carrier', sa.String(length=100), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_reason', sa.String(length=500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('customer_notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('total > 0', name='ck_store_orders_positive_total'),
        sa.PrimaryKeyConstraint('id', name='pk_store_orders'),
        sa.UniqueConstraint('order_number', name='uq_store_orders_order_number'),
        sa.UniqueConstraint('payment_intent_id', name='uq_store_orders_payment_intent_id'),
        sa.UniqueConstraint('payment_id', name='uq_store_orders_payment_id'),
        sa.UniqueConstraint('idempotency_key', name='uq_store_orders_idempotency_key'),
        sa.UniqueConstraint('cancellation_key', name='uq_store_orders_cancellation_key'),
    )
    op.create_index('ix_store_orders_user_id', 'store_orders', ['user_id'])
    op.create_index('ix_store_orders_user_created', 'store_orders', ['user_id', 'created_at'])

    op.create_table(
        'store_order_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('product_title', sa.String(length=200), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_store_order_items_positive_quantity'),
        sa.ForeignKeyConstraint(['order_id'], ['store_orders.id'], name='fk_store_order_items_order_id_store_orders', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['store_products.id'], name='fk_store_order_items_product_id_store_products'),
        sa.PrimaryKeyConstraint('id', name='pk_store_order_items'),
    )
    op.create_index('ix_store_order_items_order_id', 'store_order_items', ['order_id'])

    op.create_table(
        'store_order_counters',
        sa.Column('year', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('count', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('year', name='pk_store_order_counters'),
    )

    op.create_table(
        'store_order_payment_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('payment_status', _enum('store_payment_status_enum'), nullable=False),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('payment_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['store_orders.id'], name='fk_store_order_payment_events_order_id_store_orders'),
        sa.PrimaryKeyConstraint('id', name='pk_store_order_payment_events'),
        sa.UniqueConstraint('idempotency_key', name='uq_store_order_payment_events_idempotency_key'),
    )
    op.create_index('ix_store_order_payment_events_order_id', 'store_order_payment_events', ['order_id'])

    # Inventory audit trail
    op.create_table(
        'store_inventory_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('product_title', sa.String(length=200), nullable=False),
        sa.Column('type', _enum('store_inventory_log_type_enum'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('previous_quantity', sa.Integer(), nullable=False),
        sa.Column('new_quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('order_id', sa.Uuid(), nullable=True),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('idempotency_key', sa.String(length=255), nullable=True),
        sa.Column('performed_by_type', _enum('store_performed_by_type_enum'), nullable=False),
        sa.Column('performed_by_id', sa.String(length=255), nullable=True),
        sa.Column('performed_by_name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('previous_quantity >= 0', name='ck_store_inventory_logs_non_negative_previous'),
        sa.CheckConstraint('new_quantity >= 0', name='ck_store_inventory_logs_non_negative_new'),
        sa.ForeignKeyConstraint(['product_id'], ['store_products.id'], name='fk_store_inventory_logs_product_id_store_products'),
        sa.ForeignKeyConstraint(['order_id'], ['store_orders.id'], name='fk_store_inventory_logs_order_id_store_orders'),
        sa.PrimaryKeyConstraint('id', name='pk_store_inventory_logs'),
        sa.UniqueConstraint('idempotency_key', name='uq_store_inventory_logs_idempotency_key'),
    )
    op.create_index('ix_store_inventory_logs_order_id', 'store_inventory_logs', ['order_id'])
    op.create_index('ix_store_inventory_logs_product_created', 'store_inventory_logs', ['product_id', 'created_at'])
    op.create_index('ix_store_inventory_logs_order_type', 'store_inventory_logs', ['order_id', 'type'])

    # Customers
    op.create_table(
        'store_customers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('total_orders', sa.Integer(), server_default='0', nullable=False),
        sa.Column('total_spent', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('last_order_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_store_customers'),
        sa.UniqueConstraint('user_id', name='uq_store_customers_user_id'),
    )

    op.create_table(
        'store_customer_addresses',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=False),
        sa.Column('type', _enum('store_address_type_enum'), nullable=False),
        sa.Column('first_name', sa.String(length=50), nullable=False),
        sa.Column('last_name', sa.String(length=50), nullable=False),
        sa.Column('company', sa.String(length=100), nullable=True),
        sa.Column('address_line1', sa.String(length=200), nullable=False),
        sa.Column('address_line2', sa.String(length=200), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=False),
        sa.Column('state', sa.String(length=100), nullable=False),
        sa.Column('postal_code', sa.String(length=20), nullable=False),
        sa.Column('country', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('country_code', sa.String(length=5), nullable=False),
        sa.Column('is_default', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['customer_id'], ['store_customers.id'], name='fk_store_customer_addresses_customer_id_store_customers', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_store_customer_addresses'),
    )
    op.create_index('ix_store_customer_addresses_customer_id', 'store_customer_addresses', ['customer_id'])


def downgrade() -> None:
    """Downgrade schema - Drop store tables."""
    op.drop_table('store_customer_addresses')
    op.drop_table('store_customers')
    op.drop_table('store_inventory_logs')
    op.drop_table('store_order_payment_events')
    op.drop_table('store_order_counters')
    op.drop_table('store_order_items')
    op.drop_table('store_orders')
    op.drop_table('store_cart_items')
    op.drop_table('store_carts')
    op.drop_table('store_products')

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
