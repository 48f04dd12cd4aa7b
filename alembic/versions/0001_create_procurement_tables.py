"""create procurement tables

Revision ID: 0001_procurement
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001_procurement'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('ingestion_checkpoints',
    sa.Column('source', sa.String(length=50), nullable=False),
    sa.Column('last_successful_run', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_attempted_run', sa.DateTime(timezone=True), nullable=True),
    sa.Column('consecutive_failures', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('last_processed_external_id', sa.String(length=500), nullable=True),
    sa.Column('last_processed_external_date', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_error', sa.Text(), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.CheckConstraint('consecutive_failures >= 0', name='ck_ingestion_checkpoints_failures_non_negative'),
    sa.PrimaryKeyConstraint('source'),
    comment='Ingestion progress, one row per source'
    )

    op.create_table('solicitations',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('file_name', sa.String(length=255), nullable=False),
    sa.Column('storage_key', sa.String(length=500), nullable=True),
    sa.Column('file_size', sa.Integer(), nullable=True),
    sa.Column('mime_type', sa.String(length=100), nullable=True),
    sa.Column('solicitation_number', sa.String(length=100), nullable=True),
    sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
    sa.Column('contracting_office', sa.String(length=255), nullable=True),
    sa.Column('status', sa.String(length=50), nullable=False, server_default='uploaded',
              comment='uploaded | processing | processed | failed | extraction_failed'),
    sa.Column('processing_error', sa.Text(), nullable=True),
    sa.Column('extracted_text', sa.Text(), nullable=True),
    sa.Column('extracted_fields', JSON_TYPE, nullable=True),
    sa.Column('external_message_id', sa.String(length=500), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('external_message_id', name='uq_solicitations_external_message_id')
    )
    op.create_index('ix_solicitations_solicitation_number', 'solicitations', ['solicitation_number'])
    op.create_index('ix_solicitations_created_at', 'solicitations', ['created_at'])

    op.create_table('response_quotes',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('solicitation_id', sa.Integer(), nullable=False),
    sa.Column('status', sa.String(length=50), nullable=False, server_default='draft',
              comment='draft | completed | submitted'),
    sa.Column('no_bid_reason', sa.Text(), nullable=True),
    sa.Column('response_data', JSON_TYPE, nullable=True),
    sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('generated_pdf_url', sa.Text(), nullable=True),
    sa.Column('vendor_quote_ref', sa.String(length=100), nullable=True),
    sa.Column('quote_valid_until', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.ForeignKeyConstraint(['solicitation_id'], ['solicitations.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('solicitation_id', name='uq_response_quotes_solicitation_id')
    )

    op.create_table('purchase_orders',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('order_number', sa.String(length=50), nullable=True),
    sa.Column('solicitation_number', sa.String(length=100), nullable=True),
    sa.Column('solicitation_id', sa.Integer(), nullable=True, comment='Legacy single reference'),
    sa.Column('product_name', sa.String(length=255), nullable=False, server_default='Unknown Product'),
    sa.Column('nsn', sa.String(length=20), nullable=True),
    sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
    sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=True),
    sa.Column('total_price', sa.Numeric(precision=12, scale=2), nullable=True),
    sa.Column('ship_to_name', sa.String(length=255), nullable=True),
    sa.Column('ship_to_address', sa.Text(), nullable=True),
    sa.Column('delivery_date', sa.DateTime(timezone=True), nullable=True),
    sa.Column('storage_key', sa.String(length=500), nullable=True),
    sa.Column('packing_list_storage_key', sa.String(length=500), nullable=True),
    sa.Column('extracted_data', JSON_TYPE, nullable=True),
    sa.Column('status', sa.String(length=50), nullable=False, server_default='pending',
              comment='pending | quality_sheet_created | labels_generated | verified | shipped | extraction_failed'),
    sa.Column('processing_error', sa.Text(), nullable=True),
    sa.Column('external_message_id', sa.String(length=500), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.ForeignKeyConstraint(['solicitation_id'], ['solicitations.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('external_message_id', name='uq_purchase_orders_external_message_id')
    )
    op.create_index('ix_purchase_orders_order_number', 'purchase_orders', ['order_number'])
    op.create_index('ix_purchase_orders_solicitation_number', 'purchase_orders', ['solicitation_number'])
    op.create_index('ix_purchase_orders_created_at', 'purchase_orders', ['created_at'])

    op.create_table('document_links',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('order_id', sa.Integer(), nullable=False),
    sa.Column('solicitation_id', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.ForeignKeyConstraint(['order_id'], ['purchase_orders.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['solicitation_id'], ['solicitations.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('order_id', 'solicitation_id', name='uq_document_links_order_solicitation'),
    comment='Orders issued against solicitations (many-to-many)'
    )
    op.create_index('ix_document_links_order_id', 'document_links', ['order_id'])
    op.create_index('ix_document_links_solicitation_id', 'document_links', ['solicitation_id'])

    op.create_table('quality_sheets',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('order_id', sa.Integer(), nullable=False),
    sa.Column('lot_number', sa.String(length=50), nullable=False),
    sa.Column('quantity', sa.Integer(), nullable=False),
    sa.Column('verified_by', sa.String(length=255), nullable=True),
    sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.ForeignKeyConstraint(['order_id'], ['purchase_orders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_quality_sheets_order_id', 'quality_sheets', ['order_id'])

    op.create_table('generated_labels',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('order_id', sa.Integer(), nullable=False),
    sa.Column('label_type', sa.String(length=20), nullable=False, comment='box | bottle'),
    sa.Column('label_size', sa.String(length=10), nullable=False, comment='4x6 | 3x4'),
    sa.Column('pdf_url', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.ForeignKeyConstraint(['order_id'], ['purchase_orders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_generated_labels_order_id', 'generated_labels', ['order_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_generated_labels_order_id', table_name='generated_labels')
    op.drop_table('generated_labels')
    op.drop_index('ix_quality_sheets_order_id', table_name='quality_sheets')
    op.drop_table('quality_sheets')
    op.drop_index('ix_document_links_solicitation_id', table_name='document_links')
    op.drop_index('ix_document_links_order_id', table_name='document_links')
    op.drop_table('document_links')
    op.drop_index('ix_purchase_orders_created_at', table_name='purchase_orders')
    op.drop_index('ix_purchase_orders_solicitation_number', table_name='purchase_orders')
    op.drop_index('ix_purchase_orders_order_number', table_name='purchase_orders')
    op.drop_table('purchase_orders')
    op.drop_table('response_quotes')
    op.drop_index('ix_solicitations_created_at', table_name='solicitations')
    op.drop_index('ix_solicitations_solicitation_number', table_name='solicitations')
    op.drop_table('solicitations')
    op.drop_table('ingestion_checkpoints')
