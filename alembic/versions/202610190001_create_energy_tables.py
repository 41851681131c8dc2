"""create energy monitor tables

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '202610190001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'devices',
        sa.Column('device_id', sa.String(length=64), nullable=False),
        sa.Column('device_name', sa.String(length=255), nullable=False),
        sa.Column('channel_count', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('device_id'),
    )
    op.create_index('ix_devices_device_id', 'devices', ['device_id'])
    op.create_index('ix_devices_owner_id', 'devices', ['owner_id'])

    op.create_table(
        'device_channels',
        sa.Column('device_id', sa.String(length=64), nullable=False),
        sa.Column('channel_number', sa.Integer(), nullable=False),
        sa.Column('custom_name', sa.String(length=255), nullable=False),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['device_id'], ['devices.device_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('device_id', 'channel_number'),
    )

    op.create_table(
        'total_bill_settings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('device_id', sa.String(length=64), nullable=False),
        sa.Column('total_bill_amount', sa.Float(), nullable=False),
        sa.Column('billing_period', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['device_id'], ['devices.device_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('device_id'),
    )

    op.create_table(
        'energy_reset_sessions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('device_id', sa.String(length=64), nullable=False),
        sa.Column('required_votes', sa.Integer(), nullable=False),
        sa.Column('votes_received', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reset_executed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['device_id'], ['devices.device_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_energy_reset_sessions_device_id', 'energy_reset_sessions', ['device_id'])
    op.create_index('ix_energy_reset_sessions_status', 'energy_reset_sessions', ['status'])
    op.create_index(
        'uq_energy_reset_sessions_device_voting',
        'energy_reset_sessions',
        ['device_id'],
        unique=True,
        postgresql_where=sa.text("status = 'voting'"),
        sqlite_where=sa.text("status = 'voting'"),
    )

    op.create_table(
        'energy_reset_votes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('device_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('voted_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['energy_reset_sessions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['device_id'], ['devices.device_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', 'user_id', name='uq_energy_reset_votes_session_user'),
    )
    op.create_index('ix_energy_reset_votes_session_id', 'energy_reset_votes', ['session_id'])
    op.create_index('ix_energy_reset_votes_device_id', 'energy_reset_votes', ['device_id'])

    op.create_table(
        'profiles',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'ota_status_updates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('device_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('firmware_version', sa.String(length=64), nullable=True),
        sa.Column('reported_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['device_id'], ['devices.device_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ota_status_updates_device_id', 'ota_status_updates', ['device_id'])
    op.create_index('ix_ota_status_updates_created_at', 'ota_status_updates', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_ota_status_updates_created_at', table_name='ota_status_updates')
    op.drop_index('ix_ota_status_updates_device_id', table_name='ota_status_updates')
    op.drop_table('ota_status_updates')
    op.drop_table('profiles')
    op.drop_index('ix_energy_reset_votes_device_id', table_name='energy_reset_votes')
    op.drop_index('ix_energy_reset_votes_session_id', table_name='energy_reset_votes')
    op.drop_table('energy_reset_votes')
    op.drop_index('uq_energy_reset_sessions_device_voting', table_name='energy_reset_sessions')
    op.drop_index('ix_energy_reset_sessions_status', table_name='energy_reset_sessions')
    op.drop_index('ix_energy_reset_sessions_device_id', table_name='energy_reset_sessions')
    op.drop_table('energy_reset_sessions')
    op.drop_table('total_bill_settings')
    op.drop_table('device_channels')
    op.drop_index('ix_devices_owner_id', table_name='devices')
    op.drop_index('ix_devices_device_id', table_name='devices')
    op.drop_table('devices')
