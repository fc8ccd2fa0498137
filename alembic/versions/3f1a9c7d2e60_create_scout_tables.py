"""Create scout tables: scouts, scout_runs, scout_results, scout_decisions

Revision ID: 3f1a9c7d2e60
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c7d2e60'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('scouts',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('instructions', sa.Text(), nullable=False),
        sa.Column('keywords', sa.JSON(), nullable=True),
        sa.Column('platform', sa.Text(), nullable=False),
        sa.Column('platform_config', sa.JSON(), nullable=True),
        sa.Column('organization_id', sa.Text(), nullable=True),
        sa.Column('max_results', sa.Integer(), nullable=True),
        sa.Column('quality_threshold', sa.Float(), nullable=True),
        sa.Column('frequency', sa.Text(), nullable=True),
        sa.Column('total_runs', sa.Integer(), nullable=True),
        sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('scout_runs',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('scout_id', sa.Text(), nullable=False),
        sa.Column('platform', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('results_found', sa.Integer(), nullable=True),
        sa.Column('results_processed', sa.Integer(), nullable=True),
        sa.Column('results_investigated', sa.Integer(), nullable=True),
        sa.Column('results_enriched', sa.Integer(), nullable=True),
        sa.Column('results_approved', sa.Integer(), nullable=True),
        sa.Column('results_stored', sa.Integer(), nullable=True),
        sa.Column('error_count', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('stage_timings', sa.JSON(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_scout_runs_scout_id', 'scout_runs', ['scout_id'])

    op.create_table('scout_results',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('scout_id', sa.Text(), nullable=False),
        sa.Column('run_id', sa.Text(), nullable=False),
        sa.Column('organization_id', sa.Text(), nullable=True),
        sa.Column('platform', sa.Text(), nullable=False),
        sa.Column('external_id', sa.Text(), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('author', sa.Text(), nullable=True),
        sa.Column('author_url', sa.Text(), nullable=True),
        sa.Column('engagement_score', sa.Float(), nullable=False),
        sa.Column('relevance_score', sa.Float(), nullable=False),
        sa.Column('sentiment', sa.Text(), nullable=True),
        sa.Column('sentiment_score', sa.Float(), nullable=True),
        sa.Column('platform_data', sa.JSON(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('scout_id', 'external_id', name='uq_scout_result_external_id'),
    )
    op.create_index('ix_scout_results_scout_id', 'scout_results', ['scout_id'])
    op.create_index('ix_scout_results_run_id', 'scout_results', ['run_id'])

    op.create_table('scout_decisions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('run_id', sa.Text(), nullable=False),
        sa.Column('scout_id', sa.Text(), nullable=False),
        sa.Column('stage', sa.Text(), nullable=False),
        sa.Column('item_key', sa.Text(), nullable=False),
        sa.Column('item_title', sa.Text(), nullable=True),
        sa.Column('verdict', sa.Text(), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('rationale', sa.Text(), nullable=True),
        sa.Column('sentiment', sa.Text(), nullable=True),
        sa.Column('fallback', sa.Boolean(), nullable=True),
        sa.Column('item_data', sa.JSON(), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_scout_decisions_run_id', 'scout_decisions', ['run_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_scout_decisions_run_id', table_name='scout_decisions')
    op.drop_table('scout_decisions')
    op.drop_index('ix_scout_results_run_id', table_name='scout_results')
    op.drop_index('ix_scout_results_scout_id', table_name='scout_results')
    op.drop_table('scout_results')
    op.drop_index('ix_scout_runs_scout_id', table_name='scout_runs')
    op.drop_table('scout_runs')
    op.drop_table('scouts')
