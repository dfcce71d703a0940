"""Initial migration

Revision ID: 001_initial
Revises: 
Create Date: 2025-01-15 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Cities table (provider-namespaced codes)
    op.create_table(
        'cities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('country', sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code')
    )

    # Reference products table
    op.create_table(
        'reference_products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('cpu', sa.String(length=255), nullable=False),
        sa.Column('cpu_cores', sa.Integer(), nullable=False),
        sa.Column('ram_gb', sa.Integer(), nullable=False),
        sa.Column('storage_description', sa.Text(), nullable=False),
        sa.Column('storage_total_tb', sa.Float(), nullable=False),
        sa.Column('network_gbps', sa.Integer(), nullable=False),
        sa.Column('price_usd', sa.Float(), nullable=False),
        sa.Column('generation', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    # Regional prices table
    op.create_table(
        'regional_prices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reference_product_id', sa.Integer(), nullable=False),
        sa.Column('region', sa.String(length=8), nullable=False),
        sa.Column('price_usd', sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['reference_product_id'], ['reference_products.id'], ondelete='CASCADE'
        ),
        sa.UniqueConstraint(
            'reference_product_id', 'region', name='uq_regional_price_product_region'
        )
    )

    # Competitor products table
    op.create_table(
        'competitor_products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('competitor', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('cpu', sa.String(length=255), nullable=False),
        sa.Column('cpu_cores', sa.Integer(), nullable=False),
        sa.Column('ram_gb', sa.Integer(), nullable=False),
        sa.Column('storage_description', sa.Text(), nullable=False),
        sa.Column('storage_total_tb', sa.Float(), nullable=False),
        sa.Column('network_gbps', sa.Integer(), nullable=False),
        sa.Column('price_usd', sa.Float(), nullable=False),
        sa.Column('city_id', sa.Integer(), nullable=False),
        sa.Column('source_url', sa.Text(), nullable=False),
        sa.Column('inventory_url', sa.Text(), nullable=True),
        sa.Column('in_stock', sa.Boolean(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('last_verified', sa.DateTime(), nullable=False),
        sa.Column('last_inventory_check', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['city_id'], ['cities.id'])
    )
    op.create_index(
        'ix_competitor_product_identity',
        'competitor_products',
        ['competitor', 'name', 'city_id']
    )

    # Comparisons table
    op.create_table(
        'comparisons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reference_product_id', sa.Integer(), nullable=False),
        sa.Column('competitor_product_id', sa.Integer(), nullable=False),
        sa.Column('price_difference_percent', sa.Float(), nullable=False),
        sa.Column('regional_reference_price_usd', sa.Float(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['reference_product_id'], ['reference_products.id'], ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(
            ['competitor_product_id'], ['competitor_products.id'], ondelete='CASCADE'
        )
    )

    # Price history table (survives product replacement)
    op.create_table(
        'price_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('competitor_product_id', sa.Integer(), nullable=True),
        sa.Column('competitor', sa.String(length=32), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('city_name', sa.String(length=128), nullable=False),
        sa.Column('old_price', sa.Float(), nullable=False),
        sa.Column('new_price', sa.Float(), nullable=False),
        sa.Column('change_percent', sa.Float(), nullable=False),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['competitor_product_id'], ['competitor_products.id'], ondelete='SET NULL'
        )
    )
    op.create_index('ix_price_history_recorded_at', 'price_history', ['recorded_at'])

    # Pipeline runs table
    op.create_table(
        'pipeline_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('run_id', sa.String(length=64), nullable=False),
        sa.Column('trigger', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('rules_version', sa.String(length=64), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('products_ingested', sa.Integer(), nullable=False),
        sa.Column('entries_skipped', sa.Integer(), nullable=False),
        sa.Column('failed_units', sa.Integer(), nullable=False),
        sa.Column('price_changes', sa.Integer(), nullable=False),
        sa.Column('comparisons_created', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_pipeline_runs_run_id', 'pipeline_runs', ['run_id'])


def downgrade() -> None:
    op.drop_index('ix_pipeline_runs_run_id', table_name='pipeline_runs')
    op.drop_table('pipeline_runs')
    op.drop_index('ix_price_history_recorded_at', table_name='price_history')
    op.drop_table('price_history')
    op.drop_table('comparisons')
    op.drop_index('ix_competitor_product_identity', table_name='competitor_products')
    op.drop_table('competitor_products')
    op.drop_table('regional_prices')
    op.drop_table('reference_products')
    op.drop_table('cities')
