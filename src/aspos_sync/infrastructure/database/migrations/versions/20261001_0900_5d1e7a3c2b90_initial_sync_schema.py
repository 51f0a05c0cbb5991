"""Initial sync schema

Revision ID: 5d1e7a3c2b90
Revises:
Create Date: 2026-10-01 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5d1e7a3c2b90'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create aspos_stores table
    op.create_table('aspos_stores',
    sa.Column('id', sa.String(length=64), nullable=False),
    sa.Column('city', sa.String(length=255), nullable=True),
    sa.Column('code', sa.String(length=64), nullable=True),
    sa.Column('email', sa.String(length=255), nullable=True),
    sa.Column('name', sa.String(length=255), nullable=True),
    sa.Column('phone_number', sa.String(length=64), nullable=True),
    sa.Column('postal_code', sa.String(length=32), nullable=True),
    sa.Column('status', sa.String(length=32), nullable=False),
    sa.Column('street', sa.String(length=255), nullable=True),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_aspos_stores_status', 'aspos_stores', ['status'], unique=False)

    # Create catalog_products table
    op.create_table('catalog_products',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=500), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('aspos_state', sa.String(length=32), nullable=True),
    sa.Column('status', sa.String(length=32), nullable=False),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )

    # Create catalog_product_meta table
    op.create_table('catalog_product_meta',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('product_id', sa.Integer(), nullable=False),
    sa.Column('meta_key', sa.String(length=255), nullable=False),
    sa.Column('meta_value', sa.Text(), nullable=True),
    sa.ForeignKeyConstraint(['product_id'], ['catalog_products.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('product_id', 'meta_key', name='uq_catalog_product_meta_key')
    )
    op.create_index('ix_catalog_product_meta_aspos_id', 'catalog_product_meta', ['meta_value'], unique=False, postgresql_where=sa.text("meta_key = '_aspos_id'"), sqlite_where=sa.text("meta_key = '_aspos_id'"))

    # Create aspos_inventory table
    op.create_table('aspos_inventory',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('product_id', sa.Integer(), nullable=False),
    sa.Column('store_id', sa.String(length=64), nullable=False),
    sa.Column('aspos_product_id', sa.String(length=64), nullable=False),
    sa.Column('available_quantity', sa.Float(), nullable=False),
    sa.Column('physical_stock_quantity', sa.Float(), nullable=False),
    sa.Column('price_incl_tax', sa.Float(), nullable=True),
    sa.Column('price_excl_tax', sa.Float(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['product_id'], ['catalog_products.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('product_id', 'store_id', name='uq_aspos_inventory_product_store')
    )
    op.create_index('ix_aspos_inventory_aspos_product_store', 'aspos_inventory', ['aspos_product_id', 'store_id'], unique=False)

    # Create sync_tasks table
    op.create_table('sync_tasks',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('kind', sa.String(length=32), nullable=False),
    sa.Column('store_id', sa.String(length=64), nullable=True),
    sa.Column('status', sa.String(length=32), nullable=False),
    sa.Column('submitted_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )

    # Create sync_triggers table
    op.create_table('sync_triggers',
    sa.Column('name', sa.String(length=50), nullable=False),
    sa.Column('scheduled_for', sa.DateTime(), nullable=True),
    sa.Column('last_fired_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('name')
    )

    # Create sync_status table
    op.create_table('sync_status',
    sa.Column('id', sa.String(length=50), nullable=False),
    sa.Column('last_sync_at', sa.DateTime(), nullable=True),
    sa.Column('records_synced', sa.Integer(), nullable=False),
    sa.Column('status', sa.String(length=50), nullable=False),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )


def downgrade() -> None:
    op.drop_table('sync_status')
    op.drop_table('sync_triggers')
    op.drop_table('sync_tasks')
    op.drop_index('ix_aspos_inventory_aspos_product_store', table_name='aspos_inventory')
    op.drop_table('aspos_inventory')
    op.drop_index('ix_catalog_product_meta_aspos_id', table_name='catalog_product_meta')
    op.drop_table('catalog_product_meta')
    op.drop_table('catalog_products')
    op.drop_index('ix_aspos_stores_status', table_name='aspos_stores')
    op.drop_table('aspos_stores')
