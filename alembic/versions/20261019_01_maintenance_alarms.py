"""create machines, maintenance alarms, events and notifications

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '20261019_01'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        'machines',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=11), nullable=False, server_default='active'),
        sa.Column('daily_hours', sa.Float(), nullable=False, server_default='0'),
        sa.Column('operating_days', postgresql.JSONB(astext_type=sa.Text()), nullable=True, server_default=sa.text("'[]'::jsonb")),
        *_timestamps(),
    )
    op.create_index('idx_machines_status', 'machines', ['status'])

    op.create_table(
        'maintenance_alarms',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('machine_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('machines.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('related_parts', postgresql.JSONB(astext_type=sa.Text()), nullable=True, server_default=sa.text("'[]'::jsonb")),
        sa.Column('interval_hours', sa.Float(), nullable=False),
        sa.Column('accumulated_hours', sa.Float(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('reset_on_trigger', sa.Boolean(), nullable=True),
        sa.Column('last_accumulation_checkpoint', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_triggered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_triggered_hours', sa.Float(), nullable=True),
        sa.Column('times_triggered', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('interval_hours > 0', name='ck_maintenance_alarms_interval_positive'),
        *_timestamps(),
    )
    op.create_index('idx_maintenance_alarms_machine', 'maintenance_alarms', ['machine_id'])
    op.create_index('idx_maintenance_alarms_active', 'maintenance_alarms', ['machine_id', 'is_active'])

    op.create_table(
        'machine_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('machine_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('machines.id', ondelete='CASCADE'), nullable=False),
        sa.Column('alarm_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('trigger_number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('triggered_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('accumulated_hours', sa.Float(), nullable=False),
        sa.Column('created_by', sa.String(length=50), nullable=False, server_default='system'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_machine_events_machine_time', 'machine_events', ['machine_id', 'triggered_at'])
    op.create_index('uq_machine_events_alarm_trigger', 'machine_events', ['alarm_id', 'trigger_number'], unique=True)

    op.create_table(
        'notifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('machine_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('machines.id', ondelete='CASCADE'), nullable=False),
        sa.Column('alarm_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('notification_type', sa.String(length=50), nullable=False, server_default='maintenance_due'),
        sa.Column('message', sa.String(length=500), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_notifications_machine_unread', 'notifications', ['machine_id', 'is_read'])


def downgrade() -> None:
    op.drop_index('idx_notifications_machine_unread', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('uq_machine_events_alarm_trigger', table_name='machine_events')
    op.drop_index('idx_machine_events_machine_time', table_name='machine_events')
    op.drop_table('machine_events')
    op.drop_index('idx_maintenance_alarms_active', table_name='maintenance_alarms')
    op.drop_index('idx_maintenance_alarms_machine', table_name='maintenance_alarms')
    op.drop_table('maintenance_alarms')
    op.drop_index('idx_machines_status', table_name='machines')
    op.drop_table('machines')
