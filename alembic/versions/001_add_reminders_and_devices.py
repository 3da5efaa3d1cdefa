"""add reminders and devices tables

Revision ID: 001_add_reminders_and_devices
Revises:
Create Date: 2025-10-06
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_add_reminders_and_devices'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'reminders',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('owner_id', sa.String(), nullable=True),
        sa.Column('token', sa.String(), nullable=True),
        sa.Column('source_kind', sa.String(), nullable=False, server_default='task'),
        sa.Column('source_ref', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('body', sa.String(), nullable=False, server_default=''),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('repeat_rule', sa.String(), nullable=False, server_default='none'),
        sa.Column('payload', sa.dialects.postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_error', sa.String(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_reminders_owner_id', 'reminders', ['owner_id'])
    op.create_index('ix_reminders_source_ref', 'reminders', ['source_ref'])
    op.create_index('ix_reminders_scheduled_at', 'reminders', ['scheduled_at'])
    op.create_index('ix_reminders_sent_scheduled', 'reminders', ['sent', 'scheduled_at'])
    op.create_index('ix_reminders_source', 'reminders', ['source_ref', 'sent'])

    op.create_table(
        'devices',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('token', sa.String(), nullable=False),
        sa.Column('owner_id', sa.String(), nullable=True),
        sa.Column('platform', sa.String(), nullable=False, server_default='unknown'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_devices_token', 'devices', ['token'])


def downgrade() -> None:
    op.drop_index('ix_devices_token', table_name='devices')
    op.drop_table('devices')
    op.drop_index('ix_reminders_source', table_name='reminders')
    op.drop_index('ix_reminders_sent_scheduled', table_name='reminders')
    op.drop_index('ix_reminders_scheduled_at', table_name='reminders')
    op.drop_index('ix_reminders_source_ref', table_name='reminders')
    op.drop_index('ix_reminders_owner_id', table_name='reminders')
    op.drop_table('reminders')
