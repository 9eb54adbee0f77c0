"""Initial schema - events, telemetry and analytics outputs

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # 1. Events table
    op.create_table('events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('event_type', sa.String(50), nullable=True),
        sa.Column('venue_name', sa.String(200), nullable=True),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('current_attendance', sa.Integer(), server_default='0'),
        sa.Column('staff_on_duty', sa.Integer(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('status', sa.String(20), server_default='scheduled'),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_events_status', 'events', ['status'])

    # 2. Incident Logs table
    op.create_table('incident_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('event_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('incident_type', sa.String(50), nullable=False),
        sa.Column('location', sa.String(200), nullable=False, server_default='Unknown'),
        sa.Column('priority', sa.String(20), server_default='medium'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_escalated', sa.Boolean(), server_default='false'),
        sa.Column('weather_condition', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_incident_logs_event_created', 'incident_logs', ['event_id', 'created_at'])

    # 3. Attendance Records table
    op.create_table('attendance_records',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('event_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False),
    )
    op.create_index('ix_attendance_records_event_recorded', 'attendance_records', ['event_id', 'recorded_at'])

    # 4. Risk Scores table (one row per event)
    op.create_table('risk_scores',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('event_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('overall_score', sa.Float(), nullable=False),
        sa.Column('risk_level', sa.String(20), nullable=False),
        sa.Column('contributing_factors', postgresql.JSONB(), server_default='[]'),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False),
    )

    # 5. Incident Patterns table (one row per event and pattern type)
    op.create_table('incident_patterns',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('event_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('pattern_type', sa.String(20), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('factors', postgresql.JSONB(), server_default='[]'),
        sa.Column('impact', sa.Text(), server_default=''),
        sa.Column('recommendations', postgresql.JSONB(), server_default='[]'),
        sa.Column('detected_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('event_id', 'pattern_type', name='uq_incident_patterns_event_type'),
    )

    # 6. Crowd Predictions table
    op.create_table('crowd_predictions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('event_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('location', sa.String(200), nullable=False),
        sa.Column('current_density', sa.Float(), nullable=False),
        sa.Column('predicted_density', sa.Float(), nullable=False),
        sa.Column('predicted_count', sa.Integer(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('factors', postgresql.JSONB(), server_default='[]'),
        sa.Column('risk_level', sa.String(20), nullable=False),
        sa.Column('recommendations', postgresql.JSONB(), server_default='[]'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_crowd_predictions_event_timestamp', 'crowd_predictions', ['event_id', 'timestamp'])

    # 7. Predictive Alerts table
    op.create_table('predictive_alerts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('event_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('alert_type', sa.String(20), nullable=False),
        sa.Column('severity', sa.String(20), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('recommendations', postgresql.JSONB(), server_default='[]'),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('acknowledged', sa.Boolean(), server_default='false'),
        sa.Column('acknowledged_by', sa.String(100), nullable=True),
        sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        'ix_predictive_alerts_event_active', 'predictive_alerts',
        ['event_id', 'acknowledged', 'expires_at'],
    )


def downgrade() -> None:
    op.drop_table('predictive_alerts')
    op.drop_table('crowd_predictions')
    op.drop_table('incident_patterns')
    op.drop_table('risk_scores')
    op.drop_table('attendance_records')
    op.drop_table('incident_logs')
    op.drop_table('events')
