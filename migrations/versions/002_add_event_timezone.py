"""
SafeVenue - Database Migration: Add Event Timezone
Stores the venue's IANA zone so hour-of-day analysis runs on local time

Run: alembic upgrade head
"""

from alembic import op
import sqlalchemy as sa

revision = '002_add_event_timezone'
down_revision = '001_initial_schema'
branch_labels = None
depends_on = None


def upgrade():
    op.add_column('events', sa.Column('timezone', sa.String(64), nullable=True))


def downgrade():
    op.drop_column('events', 'timezone')
