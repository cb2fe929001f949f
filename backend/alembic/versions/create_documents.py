"""Create the documents table backing every marketplace collection

Revision ID: create_documents
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = 'create_documents'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('documents',
        sa.Column('collection', sa.String(length=64), nullable=False),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column('version', sa.Integer(), server_default=sa.text('1'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('collection', 'id', name='documents_pkey')
    )
    op.create_index('documents_collection_created_at_idx', 'documents', ['collection', 'created_at'], unique=False)
    op.create_index('documents_data_gin_idx', 'documents', ['data'], unique=False, postgresql_using='gin')


def downgrade():
    op.drop_index('documents_data_gin_idx', table_name='documents')
    op.drop_index('documents_collection_created_at_idx', table_name='documents')
    op.drop_table('documents')
