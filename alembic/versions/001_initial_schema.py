"""Initial gazette sync schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create gazette_communications table
    op.create_table(
        'gazette_communications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('dedup_key', sa.String(512), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('process_number', sa.String(32), nullable=False),
        sa.Column('process_number_masked', sa.String(40), nullable=True),
        sa.Column('court', sa.String(32), nullable=True),
        sa.Column('disclosure_date', sa.Date(), nullable=False),
        sa.Column('channel', sa.String(4), nullable=True),
        sa.Column('communication_type', sa.String(255), nullable=True),
        sa.Column('organ_name', sa.String(512), nullable=True),
        sa.Column('communication_number', sa.String(64), nullable=True),
        sa.Column('document_type', sa.String(255), nullable=True),
        sa.Column('class_name', sa.String(255), nullable=True),
        sa.Column('recipients', sa.JSON(), nullable=True),
        sa.Column('attorney_recipients', sa.JSON(), nullable=True),
        sa.Column('text', sa.Text(), nullable=True),
        sa.Column('link', sa.Text(), nullable=True),
        sa.Column('attorney_name', sa.String(255), nullable=False),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('ingested_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_gazette_communications_id', 'gazette_communications', ['id'])
    op.create_index('ix_gazette_communications_dedup_key', 'gazette_communications', ['dedup_key'], unique=True)
    op.create_index('ix_gazette_communications_external_id', 'gazette_communications', ['external_id'])
    op.create_index('ix_gazette_communications_process_number', 'gazette_communications', ['process_number'])
    op.create_index('ix_gazette_communications_disclosure_date', 'gazette_communications', ['disclosure_date'])
    op.create_index('ix_gazette_communications_attorney_name', 'gazette_communications', ['attorney_name'])
    op.create_index('ix_gazette_communications_read', 'gazette_communications', ['read'])

    # Create gazette_sync_runs table
    op.create_table(
        'gazette_sync_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('trigger', sa.Enum('scheduled', 'manual', 'startup', name='synctrigger'), nullable=False),
        sa.Column('status', sa.Enum('running', 'success', 'partial', 'failed', name='syncrunstatus'), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('items_found', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('items_saved', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('date_range_start', sa.Date(), nullable=True),
        sa.Column('date_range_end', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_gazette_sync_runs_id', 'gazette_sync_runs', ['id'])
    op.create_index('ix_gazette_sync_runs_status', 'gazette_sync_runs', ['status'])
    op.create_index('ix_gazette_sync_runs_created_at', 'gazette_sync_runs', ['created_at'])
    op.create_index(
        'ix_gazette_sync_runs_single_running',
        'gazette_sync_runs',
        ['status'],
        unique=True,
        postgresql_where=sa.text("status = 'running'"),
        sqlite_where=sa.text("status = 'running'"),
    )

    # Create system_settings table
    op.create_table(
        'system_settings',
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.Column('updated_by', sa.String(255), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('key')
    )


def downgrade() -> None:
    op.drop_table('system_settings')

    op.drop_index('ix_gazette_sync_runs_single_running', 'gazette_sync_runs')
    op.drop_index('ix_gazette_sync_runs_created_at', 'gazette_sync_runs')
    op.drop_index('ix_gazette_sync_runs_status', 'gazette_sync_runs')
    op.drop_index('ix_gazette_sync_runs_id', 'gazette_sync_runs')
    op.drop_table('gazette_sync_runs')

    op.drop_index('ix_gazette_communications_read', 'gazette_communications')
    op.drop_index('ix_gazette_communications_attorney_name', 'gazette_communications')
    op.drop_index('ix_gazette_communications_disclosure_date', 'gazette_communications')
    op.drop_index('ix_gazette_communications_process_number', 'gazette_communications')
    op.drop_index('ix_gazette_communications_external_id', 'gazette_communications')
    op.drop_index('ix_gazette_communications_dedup_key', 'gazette_communications')
    op.drop_index('ix_gazette_communications_id', 'gazette_communications')
    op.drop_table('gazette_communications')

    if op.get_bind().dialect.name == 'postgresql':
        op.execute('DROP TYPE IF EXISTS syncrunstatus')
        op.execute('DROP TYPE IF EXISTS synctrigger')
