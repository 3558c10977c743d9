"""Create conflict engine tables

Revision ID: 3f1a7c9e2b40
Revises:
Create Date: 2026-10-19

Creates activities (with speaker and resource assignments), companies,
assignment requests, schedule and stand conflicts, and the append-only
resolution history. Partial unique indexes keep at most one active
conflict per activity pair and kind, one active conflict per stand and one
live request per company and event.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from expo_conflicts.models.base import GUID


# revision identifiers, used by Alembic.
revision: str = '3f1a7c9e2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_CONFLICT = "state NOT IN ('resuelto', 'ignorado', 'cancelado') AND deleted_at IS NULL"
LIVE_ROW = "deleted_at IS NULL"


def _json():
    return sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _base_columns():
    return [
        sa.Column('id', GUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def _workflow_columns():
    return [
        sa.Column('state', sa.String(length=20), nullable=False, server_default='detected'),
        sa.Column('detection_method', sa.String(length=20), nullable=False, server_default='automatic'),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('is_urgent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('assigned_to', GUID(), nullable=True),
        sa.Column('review_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolution_action', sa.String(length=50), nullable=True),
        sa.Column('resolution_description', sa.Text(), nullable=True),
        sa.Column('resolved_by', GUID(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolution_hours', sa.Float(), nullable=True),
        sa.Column('ignore_justification', sa.Text(), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('approved_by', GUID(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('escalated_to', GUID(), nullable=True),
        sa.Column('escalation_reason', sa.Text(), nullable=True),
        sa.Column('escalated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notification_log', _json(), nullable=False),
        sa.Column('change_history', _json(), nullable=False),
        sa.Column('created_by', GUID(), nullable=True),
        sa.Column('updated_by', GUID(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table('activities',
        sa.Column('event_id', GUID(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('activity_type', sa.String(length=50), nullable=False, server_default='other'),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('modality', sa.String(length=20), nullable=False, server_default='in_person'),
        sa.Column('track_id', GUID(), nullable=True),
        sa.Column('registered_participants', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('state', sa.String(length=20), nullable=False, server_default='scheduled'),
        *_base_columns(),
        sa.CheckConstraint('duration_minutes IS NULL OR duration_minutes > 0', name='check_activity_duration_positive'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('activities', schema=None) as batch_op:
        batch_op.create_index('ix_activities_event_id', ['event_id'], unique=False)
        batch_op.create_index('idx_activity_event_state', ['event_id', 'state'], unique=False)
        batch_op.create_index('idx_activity_time_range', ['start_time', 'end_time'], unique=False)

    op.create_table('activity_speakers',
        sa.Column('activity_id', GUID(), nullable=False),
        sa.Column('speaker_id', GUID(), nullable=False),
        sa.Column('role', sa.String(length=50), nullable=False, server_default='speaker'),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        *_base_columns(),
        sa.ForeignKeyConstraint(['activity_id'], ['activities.id']),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('activity_speakers', schema=None) as batch_op:
        batch_op.create_index('ix_activity_speakers_activity_id', ['activity_id'], unique=False)
        batch_op.create_index('ix_activity_speakers_speaker_id', ['speaker_id'], unique=False)

    op.create_table('activity_resources',
        sa.Column('activity_id', GUID(), nullable=False),
        sa.Column('resource_id', GUID(), nullable=False),
        sa.Column('is_critical', sa.Boolean(), nullable=True),
        *_base_columns(),
        sa.ForeignKeyConstraint(['activity_id'], ['activities.id']),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('activity_resources', schema=None) as batch_op:
        batch_op.create_index('ix_activity_resources_activity_id', ['activity_id'], unique=False)
        batch_op.create_index('ix_activity_resources_resource_id', ['resource_id'], unique=False)

    op.create_table('companies',
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('participation_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('average_rating', sa.Float(), nullable=True),
        sa.Column('first_participation_at', sa.DateTime(timezone=True), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('assignment_requests',
        sa.Column('company_id', GUID(), nullable=False),
        sa.Column('event_id', GUID(), nullable=False),
        sa.Column('stand_id', GUID(), nullable=True),
        sa.Column('assigned_stand_id', GUID(), nullable=True),
        sa.Column('mode', sa.String(length=20), nullable=False, server_default='direct_pick'),
        sa.Column('state', sa.String(length=20), nullable=False, server_default='requested'),
        sa.Column('priority_score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('response_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('notification_log', _json(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('assignment_requests', schema=None) as batch_op:
        batch_op.create_index('ix_assignment_requests_company_id', ['company_id'], unique=False)
        batch_op.create_index('ix_assignment_requests_event_id', ['event_id'], unique=False)
        batch_op.create_index('idx_request_event_stand', ['event_id', 'stand_id'], unique=False)
        batch_op.create_index(
            'uq_request_live_company_event', ['company_id', 'event_id'], unique=True,
            sqlite_where=sa.text(LIVE_ROW), postgresql_where=sa.text(LIVE_ROW),
        )

    op.create_table('schedule_conflicts',
        sa.Column('event_id', GUID(), nullable=False),
        sa.Column('activity_a_id', GUID(), nullable=False),
        sa.Column('activity_b_id', GUID(), nullable=False),
        sa.Column('kind', sa.String(length=30), nullable=False),
        sa.Column('severity', sa.String(length=20), nullable=False),
        sa.Column('details', _json(), nullable=False),
        sa.Column('affected_participants', sa.Integer(), nullable=False, server_default='0'),
        *_workflow_columns(),
        *_base_columns(),
        sa.ForeignKeyConstraint(['activity_a_id'], ['activities.id']),
        sa.ForeignKeyConstraint(['activity_b_id'], ['activities.id']),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('schedule_conflicts', schema=None) as batch_op:
        batch_op.create_index('ix_schedule_conflicts_event_id', ['event_id'], unique=False)
        batch_op.create_index('ix_schedule_conflicts_state', ['state'], unique=False)
        batch_op.create_index('idx_schedule_conflict_event_state', ['event_id', 'state'], unique=False)
        batch_op.create_index(
            'uq_schedule_conflict_active_pair_kind', ['activity_a_id', 'activity_b_id', 'kind'], unique=True,
            sqlite_where=sa.text(ACTIVE_CONFLICT), postgresql_where=sa.text(ACTIVE_CONFLICT),
        )

    op.create_table('stand_conflicts',
        sa.Column('event_id', GUID(), nullable=False),
        sa.Column('stand_id', GUID(), nullable=False),
        sa.Column('kind', sa.String(length=30), nullable=False, server_default='multiple_requests'),
        sa.Column('companies', _json(), nullable=False),
        sa.Column('request_ids', _json(), nullable=False),
        sa.Column('resolution_priority', sa.String(length=20), nullable=False, server_default='medium'),
        sa.Column('estimated_impact', sa.String(length=20), nullable=False, server_default='medium'),
        sa.Column('assigned_company', GUID(), nullable=True),
        sa.Column('compensated_companies', _json(), nullable=False),
        *_workflow_columns(),
        *_base_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('stand_conflicts', schema=None) as batch_op:
        batch_op.create_index('ix_stand_conflicts_event_id', ['event_id'], unique=False)
        batch_op.create_index('ix_stand_conflicts_state', ['state'], unique=False)
        batch_op.create_index(
            'uq_stand_conflict_active_stand', ['event_id', 'stand_id'], unique=True,
            sqlite_where=sa.text(ACTIVE_CONFLICT), postgresql_where=sa.text(ACTIVE_CONFLICT),
        )

    op.create_table('resolution_history',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('event_id', GUID(), nullable=False),
        sa.Column('conflict_id', GUID(), nullable=True),
        sa.Column('request_id', GUID(), nullable=True),
        sa.Column('company_id', GUID(), nullable=True),
        sa.Column('stand_before', GUID(), nullable=True),
        sa.Column('stand_after', GUID(), nullable=True),
        sa.Column('state_before', sa.String(length=20), nullable=True),
        sa.Column('state_after', sa.String(length=20), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False, server_default=''),
        sa.Column('actor_id', GUID(), nullable=True),
        sa.Column('recorded_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reversible', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('reverts_entry_id', GUID(), nullable=True),
        sa.ForeignKeyConstraint(['conflict_id'], ['stand_conflicts.id']),
        sa.ForeignKeyConstraint(['request_id'], ['assignment_requests.id']),
        sa.ForeignKeyConstraint(['reverts_entry_id'], ['resolution_history.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reverts_entry_id')
    )
    with op.batch_alter_table('resolution_history', schema=None) as batch_op:
        batch_op.create_index('ix_resolution_history_event_id', ['event_id'], unique=False)
        batch_op.create_index('ix_resolution_history_conflict_id', ['conflict_id'], unique=False)
        batch_op.create_index('idx_history_event_recorded', ['event_id', 'recorded_at'], unique=False)


def downgrade() -> None:
    op.drop_table('resolution_history')
    op.drop_table('stand_conflicts')
    op.drop_table('schedule_conflicts')
    op.drop_table('assignment_requests')
    op.drop_table('companies')
    op.drop_table('activity_resources')
    op.drop_table('activity_speakers')
    op.drop_table('activities')
