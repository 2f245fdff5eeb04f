"""Error entries schema

Revision ID: 3f9c2a71d0be
Revises: 
Create Date: 2026-10-19 09:12:44.102318

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2a71d0be'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create aggregated error entries table."""
    op.create_table(
        'faultline_error_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('fingerprint', sa.String(length=64), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('stack_trace', sa.Text(), nullable=False),
        sa.Column('exception_type', sa.String(length=255), nullable=False),
        sa.Column('sample_url', sa.Text(), nullable=False),
        sa.Column('sample_method', sa.String(length=16), nullable=False),
        sa.Column('sample_headers_json', sa.JSON(), nullable=True, comment='Redacted request headers'),
        sa.Column('count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed', sa.Boolean(), nullable=False),
        sa.CheckConstraint('count >= 1', name='ck_faultline_count_positive'),
        sa.PrimaryKeyConstraint('id')
    )

    # At most one pending row per fingerprint
    op.create_index(
        'uq_faultline_pending_fingerprint',
        'faultline_error_entries',
        ['fingerprint'],
        unique=True,
        postgresql_where=sa.text('processed = false'),
        sqlite_where=sa.text('processed = 0')
    )
    op.create_index(
        'ix_faultline_processed_last_seen',
        'faultline_error_entries',
        ['processed', 'last_seen']
    )


def downgrade() -> None:
    """Drop aggregated error entries table."""
    op.drop_index('ix_faultline_processed_last_seen', table_name='faultline_error_entries')
    op.drop_index('uq_faultline_pending_fingerprint', table_name='faultline_error_entries')
    op.drop_table('faultline_error_entries')
