"""Intake sessions, intake attachments, processes, process attachments.

Revision ID: 0001_intake_and_processes
Revises:
Create Date: 2026-10-19

Creates:
- intake_sessions (conversation state, meta fields, analysis results)
- intake_attachments
- processes (records created by intake promotion)
- process_attachments (value copies of intake attachments)
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_intake_and_processes'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ==========================================================================
    # intake_sessions
    # ==========================================================================
    op.create_table(
        'intake_sessions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('owner_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('title', sa.String(200), nullable=True),
        sa.Column('department', sa.String(100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(200), nullable=True),
        sa.Column('business_unit', sa.String(200), nullable=True),
        sa.Column('contact_email', sa.String(320), nullable=True),
        sa.Column('queue_priority', sa.String(20), nullable=False),
        sa.Column('resolved_slots', sa.JSON(), nullable=False),
        sa.Column('transcript', sa.JSON(), nullable=False),
        sa.Column('analysis_brief', sa.Text(), nullable=True),
        sa.Column('analysis_checkpoints', sa.JSON(), nullable=True),
        sa.Column('analysis_actionables', sa.JSON(), nullable=True),
        sa.Column('analysed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('promoted_process_id', sa.Uuid(), nullable=True),
        sa.Column('promoted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('version', sa.Integer(), server_default=sa.text('1'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_intake_sessions'),
    )
    op.create_index('idx_intake_sessions_owner', 'intake_sessions', ['owner_id', 'created_at'])
    op.create_index('idx_intake_sessions_status', 'intake_sessions', ['status'])

    # ==========================================================================
    # intake_attachments
    # ==========================================================================
    op.create_table(
        'intake_attachments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('intake_session_id', sa.Uuid(), nullable=False),
        sa.Column('file_name', sa.String(500), nullable=False),
        sa.Column('attachment_type', sa.String(20), nullable=False),
        sa.Column('storage_locator', sa.String(1024), nullable=False),
        sa.Column('content_type', sa.String(100), nullable=False),
        sa.Column('size_bytes', sa.BigInteger(), nullable=False),
        sa.Column('checksum_sha256', sa.String(64), nullable=False),
        sa.Column('enriched_text', sa.Text(), nullable=True),
        sa.Column('enriched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ['intake_session_id'], ['intake_sessions.id'],
            name='fk_intake_attachments_intake_session_id_intake_sessions',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_intake_attachments'),
    )
    op.create_index('idx_intake_attachments_session', 'intake_attachments', ['intake_session_id'])

    # ==========================================================================
    # processes
    # ==========================================================================
    op.create_table(
        'processes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('department', sa.String(100), nullable=False),
        sa.Column('owner_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('source_intake_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_processes'),
    )
    op.create_index('idx_processes_owner', 'processes', ['owner_id'])

    # ==========================================================================
    # process_attachments
    # ==========================================================================
    op.create_table(
        'process_attachments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('process_id', sa.Uuid(), nullable=False),
        sa.Column('file_name', sa.String(500), nullable=False),
        sa.Column('attachment_type', sa.String(20), nullable=False),
        sa.Column('storage_locator', sa.String(1024), nullable=False),
        sa.Column('size_bytes', sa.BigInteger(), nullable=False),
        sa.Column('enriched_text', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ['process_id'], ['processes.id'],
            name='fk_process_attachments_process_id_processes',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_process_attachments'),
    )
    op.create_index('idx_process_attachments_process', 'process_attachments', ['process_id'])


def downgrade() -> None:
    op.drop_index('idx_process_attachments_process', table_name='process_attachments')
    op.drop_table('process_attachments')
    op.drop_index('idx_processes_owner', table_name='processes')
    op.drop_table('processes')
    op.drop_index('idx_intake_attachments_session', table_name='intake_attachments')
    op.drop_table('intake_attachments')
    op.drop_index('idx_intake_sessions_status', table_name='intake_sessions')
    op.drop_index('idx_intake_sessions_owner', table_name='intake_sessions')
    op.drop_table('intake_sessions')
