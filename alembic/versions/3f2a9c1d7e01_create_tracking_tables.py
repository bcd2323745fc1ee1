"""create_tracking_tables

Revision ID: 3f2a9c1d7e01
Revises:
Create Date: 2026-03-02 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import visit_tracker.db.models


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7e01'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create tracking sessions, their event log, alerts, contacts and the outbox."""
    op.create_table('tracking_sessions',
        sa.Column('id', visit_tracker.db.models.GUID(), nullable=False),
        sa.Column('visit_id', sa.String(length=64), nullable=False),
        sa.Column('professional_id', sa.String(length=64), nullable=False),
        sa.Column('patient_id', sa.String(length=64), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('started_at', visit_tracker.db.models.UTCDateTime(), nullable=False),
        sa.Column('completed_at', visit_tracker.db.models.UTCDateTime(), nullable=True),
        sa.Column('last_latitude', sa.Float(), nullable=True),
        sa.Column('last_longitude', sa.Float(), nullable=True),
        sa.Column('last_accuracy', sa.Float(), nullable=True),
        sa.Column('last_location_at', visit_tracker.db.models.UTCDateTime(), nullable=True),
        sa.Column('check_in_interval_minutes', sa.Integer(), nullable=False),
        sa.Column('next_check_in_due', visit_tracker.db.models.UTCDateTime(), nullable=False),
        sa.Column('missed_check_ins', sa.Integer(), nullable=False),
        sa.Column('patient_address_json', sa.JSON(), nullable=False),
        sa.Column('audio_recording_enabled', sa.Boolean(), nullable=False),
        sa.Column('audio_recording_urls', sa.JSON(), nullable=False),
        sa.Column('created_at', visit_tracker.db.models.UTCDateTime(), nullable=False),
        sa.Column('updated_at', visit_tracker.db.models.UTCDateTime(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('visit_id', name='uq_tracking_session_visit')
    )
    op.create_index('ix_tracking_session_professional', 'tracking_sessions', ['professional_id', 'is_active'], unique=False)
    op.create_index('ix_tracking_session_due', 'tracking_sessions', ['is_active', 'next_check_in_due'], unique=False)

    op.create_table('tracking_events',
        sa.Column('id', visit_tracker.db.models.GUID(), nullable=False),
        sa.Column('session_id', visit_tracker.db.models.GUID(), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('accuracy', sa.Float(), nullable=True),
        sa.Column('battery_level', sa.Integer(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('occurred_at', visit_tracker.db.models.UTCDateTime(), nullable=False),
        sa.Column('stored_at', visit_tracker.db.models.UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['tracking_sessions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', 'seq', name='uq_tracking_event_session_seq')
    )
    op.create_index('ix_tracking_event_type', 'tracking_events', ['type'], unique=False)

    op.create_table('panic_alerts',
        sa.Column('id', visit_tracker.db.models.GUID(), nullable=False),
        sa.Column('session_id', visit_tracker.db.models.GUID(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('level', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('activated_at', visit_tracker.db.models.UTCDateTime(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('responded_at', visit_tracker.db.models.UTCDateTime(), nullable=True),
        sa.Column('responded_by', sa.String(length=64), nullable=True),
        sa.Column('resolution', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('notified_contacts', sa.JSON(), nullable=False),
        sa.Column('police_notified', sa.Boolean(), nullable=False),
        sa.Column('police_notified_at', visit_tracker.db.models.UTCDateTime(), nullable=True),
        sa.Column('police_response_time', sa.Integer(), nullable=True),
        sa.Column('audio_recording_url', sa.String(length=500), nullable=True),
        sa.ForeignKeyConstraint(['session_id'], ['tracking_sessions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', 'position', name='uq_panic_alert_position')
    )
    op.create_index('ix_panic_alert_status', 'panic_alerts', ['status'], unique=False)

    op.create_table('shared_contacts',
        sa.Column('id', visit_tracker.db.models.GUID(), nullable=False),
        sa.Column('session_id', visit_tracker.db.models.GUID(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('relationship', sa.String(length=60), nullable=False),
        sa.Column('token', sa.String(length=128), nullable=False),
        sa.Column('tracking_url', sa.String(length=500), nullable=False),
        sa.Column('notified_at', visit_tracker.db.models.UTCDateTime(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('expires_at', visit_tracker.db.models.UTCDateTime(), nullable=True),
        sa.Column('revoked_at', visit_tracker.db.models.UTCDateTime(), nullable=True),
        sa.Column('created_at', visit_tracker.db.models.UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['tracking_sessions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token', name='uq_shared_contact_token'),
        sa.UniqueConstraint('session_id', 'position', name='uq_shared_contact_position')
    )
    op.create_index('ix_shared_contact_session_phone', 'shared_contacts', ['session_id', 'phone'], unique=False)

    op.create_table('notification_outbox',
        sa.Column('id', visit_tracker.db.models.GUID(), nullable=False),
        sa.Column('session_id', visit_tracker.db.models.GUID(), nullable=True),
        sa.Column('visit_id', sa.String(length=64), nullable=True),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('severity', sa.String(length=16), nullable=False),
        sa.Column('recipients', sa.JSON(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', visit_tracker.db.models.UTCDateTime(), nullable=False),
        sa.Column('next_attempt_at', visit_tracker.db.models.UTCDateTime(), nullable=False),
        sa.Column('delivered_at', visit_tracker.db.models.UTCDateTime(), nullable=True),
        sa.ForeignKeyConstraint(['session_id'], ['tracking_sessions.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notification_outbox_pending', 'notification_outbox', ['status', 'next_attempt_at'], unique=False)


def downgrade() -> None:
    """Drop every tracking table."""
    op.drop_index('ix_notification_outbox_pending', table_name='notification_outbox')
    op.drop_table('notification_outbox')
    op.drop_index('ix_shared_contact_session_phone', table_name='shared_contacts')
    op.drop_table('shared_contacts')
    op.drop_index('ix_panic_alert_status', table_name='panic_alerts')
    op.drop_table('panic_alerts')
    op.drop_index('ix_tracking_event_type', table_name='tracking_events')
    op.drop_table('tracking_events')
    op.drop_index('ix_tracking_session_due', table_name='tracking_sessions')
    op.drop_index('ix_tracking_session_professional', table_name='tracking_sessions')
    op.drop_table('tracking_sessions')
