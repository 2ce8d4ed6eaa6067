"""initial inventory schema

Revision ID: 0001_initial_inventory
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the authoritative schema:
- stores: selling locations (has_pos drives variant SKU format)
- products: main products (store_id NULL) and store variants
- stock_movements: append-only stock ledger
- inventory_transfers: warehouse -> store transfer workflow
- mirror_outbox: pending mirror writes recorded with the primary change

mirror_documents lives on the "mirror" bind and is created with
``flask inventory init-mirror``.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_inventory'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # stores
    # ============================================================================
    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('has_pos', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
    )

    # ============================================================================
    # products: main rows (store_id NULL) and store variants
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('mirror_id', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=128), nullable=True),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=128), nullable=True),
        sa.Column('unit', sa.String(length=32), nullable=True),
        sa.Column('cost_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('store_id', sa.Integer(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('quantity >= 0', name='ck_products_quantity_non_negative'),
        sa.CheckConstraint('reorder_level >= 0', name='ck_products_reorder_non_negative'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_products_sku', 'products', ['sku'])
    op.create_index('ix_products_barcode', 'products', ['barcode'])
    op.create_index('ix_products_store_id', 'products', ['store_id'])
    op.create_index('ix_products_sku_store', 'products', ['sku', 'store_id'])
    op.create_index('ix_products_active_deleted', 'products', ['active', 'deleted_at'])

    # ============================================================================
    # stock_movements: append-only ledger
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=True),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('quantity >= 0', name='ck_stock_movements_quantity_non_negative'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_store_id', 'stock_movements', ['store_id'])
    op.create_index('ix_stock_movements_created_at', 'stock_movements', ['created_at'])
    op.create_index('ix_stock_movements_product_created', 'stock_movements', ['product_id', 'created_at'])

    # ============================================================================
    # inventory_transfers
    # ============================================================================
    op.create_table(
        'inventory_transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('source_product_id', sa.Integer(), nullable=False),
        sa.Column('dest_product_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('received_by', sa.Integer(), nullable=True),
        sa.Column('received_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_inventory_transfers_quantity_positive'),
        sa.ForeignKeyConstraint(['source_product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['dest_product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_inventory_transfers_source_product_id', 'inventory_transfers', ['source_product_id'])
    op.create_index('ix_inventory_transfers_dest_product_id', 'inventory_transfers', ['dest_product_id'])
    op.create_index('ix_inventory_transfers_store_id', 'inventory_transfers', ['store_id'])
    op.create_index('ix_inventory_transfers_status', 'inventory_transfers', ['status'])

    # ============================================================================
    # mirror_outbox
    # ============================================================================
    op.create_table(
        'mirror_outbox',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('collection', sa.String(length=64), nullable=False),
        sa.Column('doc_id', sa.String(length=128), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_mirror_outbox_status', 'mirror_outbox', ['status'])


def downgrade():
    op.drop_index('ix_mirror_outbox_status', table_name='mirror_outbox')
    op.drop_table('mirror_outbox')

    op.drop_index('ix_inventory_transfers_status', table_name='inventory_transfers')
    op.drop_index('ix_inventory_transfers_store_id', table_name='inventory_transfers')
    op.drop_index('ix_inventory_transfers_dest_product_id', table_name='inventory_transfers')
    op.drop_index('ix_inventory_transfers_source_product_id', table_name='inventory_transfers')
    op.drop_table('inventory_transfers')

    op.drop_index('ix_stock_movements_product_created', table_name='stock_movements')
    op.drop_index('ix_stock_movements_created_at', table_name='stock_movements')
    op.drop_index('ix_stock_movements_store_id', table_name='stock_movements')
    op.drop_index('ix_stock_movements_product_id', table_name='stock_movements')
    op.drop_table('stock_movements')

    op.drop_index('ix_products_active_deleted', table_name='products')
    op.drop_index('ix_products_sku_store', table_name='products')
    op.drop_index('ix_products_store_id', table_name='products')
    op.drop_index('ix_products_barcode', table_name='products')
    op.drop_index('ix_products_sku', table_name='products')
    op.drop_table('products')

    op.drop_table('stores')
