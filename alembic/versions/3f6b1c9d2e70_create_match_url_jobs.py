"""Create match_url_jobs and match_url_job_rows

Revision ID: 3f6b1c9d2e70
Revises:
Create Date: 2026-09-14 10:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f6b1c9d2e70'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('match_url_jobs',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('tenant_id', sa.Text(), nullable=False),
        sa.Column('created_by', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('source_type', sa.Text(), nullable=False),
        sa.Column('file_name', sa.Text(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('input_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('resolved_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('review_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unresolved_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cancel_requested', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('parent_job_id', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['parent_job_id'], ['match_url_jobs.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_match_url_jobs_tenant', 'match_url_jobs', ['tenant_id'])
    op.create_index('ix_match_url_jobs_status', 'match_url_jobs', ['status'])

    op.create_table('match_url_job_rows',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('job_id', sa.Text(), nullable=False),
        sa.Column('tenant_id', sa.Text(), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('row_id', sa.Text(), nullable=False),
        sa.Column('supplier_name', sa.Text(), nullable=True),
        sa.Column('supplier_key', sa.Text(), nullable=True),
        sa.Column('sku', sa.Text(), nullable=True),
        sa.Column('ndc_item_code', sa.Text(), nullable=True),
        sa.Column('product_name', sa.Text(), nullable=True),
        sa.Column('brand_name', sa.Text(), nullable=True),
        sa.Column('raw', sa.JSON(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('resolved_url', sa.Text(), nullable=True),
        sa.Column('resolved_domain', sa.Text(), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('matched_by', sa.Text(), nullable=True),
        sa.Column('reasons', sa.JSON(), nullable=True),
        sa.Column('candidates', sa.JSON(), nullable=True),
        sa.Column('error_code', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['job_id'], ['match_url_jobs.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_id', 'seq', name='uq_match_row_job_seq'),
        sa.UniqueConstraint('job_id', 'row_id', name='uq_match_row_job_row_id'),
    )
    # Driver page query: queued rows of one job in seq order
    op.create_index('ix_match_url_job_rows_job_status_seq', 'match_url_job_rows', ['job_id', 'status', 'seq'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_match_url_job_rows_job_status_seq', 'match_url_job_rows')
    op.drop_table('match_url_job_rows')
    op.drop_index('ix_match_url_jobs_status', 'match_url_jobs')
    op.drop_index('ix_match_url_jobs_tenant', 'match_url_jobs')
    op.drop_table('match_url_jobs')
