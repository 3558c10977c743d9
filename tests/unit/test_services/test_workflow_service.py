"""
Tests for the conflict workflow service.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from expo_conflicts.engine.errors import ConstraintViolationError, InvalidTransitionError, NotFoundError
from expo_conflicts.engine.lifecycle import TransitionPayload
from expo_conflicts.models.conflicts import ScheduleConflict
from expo_conflicts.services.conflict_detection import detect_activity_conflicts
from expo_conflicts.services.workflow import (
    escalate_expired_conflicts,
    find_expired_conflicts,
    transition_conflict,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
REVIEWER = uuid.uuid4()
MANAGER = uuid.uuid4()


def at(hour, minute=0):
    return datetime(2026, 3, 2, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def conflict(db_session, event_id, make_activity) -> ScheduleConflict:
    make_activity("A", at(9), at(10))
    make_activity("B", at(9, 30), at(10, 30))
    (record,) = detect_activity_conflicts(db_session, event_id).records
    db_session.commit()
    return record


def assign(db_session, conflict, deadline=None, now=NOW):
    return transition_conflict(
        db_session, conflict.id, "assign", TransitionPayload(reviewer_id=REVIEWER, deadline=deadline), now
    )


class TestTransitionConflict:
    """Test stored workflow transitions."""

    def test_full_resolution_path(self, db_session, conflict):
        assign(db_session, conflict)
        transition_conflict(db_session, conflict.id, "start_resolution", TransitionPayload(actor_id=REVIEWER), NOW)
        resolved = transition_conflict(
            db_session,
            conflict.id,
            "resolve",
            TransitionPayload(resolution_action="change_time", description="Moved B", resolver_id=REVIEWER),
            NOW + timedelta(hours=2),
        )
        db_session.commit()

        assert resolved.state == "resuelto"
        assert resolved.resolution_hours == 2.0
        assert resolved.resolution_action == "change_time"
        assert [h["action"] for h in resolved.change_history] == ["detect", "assign", "start_resolution", "resolve"]
        assert len(resolved.notification_log) == 3
        assert resolved.version == 4

    def test_rejected_transition_changes_nothing(self, db_session, conflict):
        with pytest.raises(InvalidTransitionError):
            transition_conflict(db_session, conflict.id, "start_resolution", TransitionPayload(), NOW)

        db_session.refresh(conflict)
        assert conflict.state == "detected"
        assert len(conflict.change_history) == 1
        assert conflict.version == 1

    def test_missing_payload_field(self, db_session, conflict):
        with pytest.raises(ConstraintViolationError):
            transition_conflict(db_session, conflict.id, "assign", TransitionPayload(), NOW)

    def test_unknown_action(self, db_session, conflict):
        with pytest.raises(ConstraintViolationError):
            transition_conflict(db_session, conflict.id, "teleport", TransitionPayload(), NOW)

    def test_unknown_conflict(self, db_session):
        with pytest.raises(NotFoundError):
            transition_conflict(db_session, uuid.uuid4(), "assign", TransitionPayload(reviewer_id=REVIEWER), NOW)

    def test_concurrent_change_is_rejected(self, db_session, conflict):
        """Another reviewer bumped the version after we read the row."""
        db_session.execute(
            update(ScheduleConflict.__table__)
            .where(ScheduleConflict.__table__.c.id == conflict.id)
            .values(version=conflict.version + 1, state="ignorado")
        )

        with pytest.raises(InvalidTransitionError) as exc_info:
            assign(db_session, conflict)

        assert "re-fetch" in exc_info.value.message

    def test_terminal_conflict_cannot_move(self, db_session, conflict):
        transition_conflict(db_session, conflict.id, "ignore", TransitionPayload(justification="Known overlap"), NOW)

        with pytest.raises(InvalidTransitionError):
            assign(db_session, conflict)

    def test_escalate_then_reassign(self, db_session, conflict):
        assign(db_session, conflict)
        escalated = transition_conflict(
            db_session, conflict.id, "escalate", TransitionPayload(target=MANAGER, reason="Needs venue change"), NOW
        )
        assert escalated.state == "escalado"
        assert escalated.priority == 3
        assert escalated.is_urgent is True

        reassigned = assign(db_session, conflict)
        assert reassigned.state == "en_revision"

    def test_approve_before_resolution(self, db_session, conflict):
        assign(db_session, conflict)
        approved = transition_conflict(db_session, conflict.id, "approve", TransitionPayload(approver_id=MANAGER), NOW)
        assert approved.state == "en_revision"
        assert approved.approved_by == MANAGER

        resolved = transition_conflict(
            db_session,
            conflict.id,
            "resolve",
            TransitionPayload(resolution_action="none", description="Accepted", resolver_id=REVIEWER),
            NOW,
        )
        assert resolved.state == "resuelto"
        assert resolved.approved_by == MANAGER

    def test_resolved_conflict_is_not_touched_by_approve(self, db_session, conflict):
        assign(db_session, conflict)
        resolved = transition_conflict(
            db_session,
            conflict.id,
            "resolve",
            TransitionPayload(resolution_action="none", description="Accepted", resolver_id=REVIEWER),
            NOW,
        )
        version = resolved.version
        history_length = len(resolved.change_history)

        with pytest.raises(InvalidTransitionError):
            transition_conflict(db_session, conflict.id, "approve", TransitionPayload(approver_id=MANAGER), NOW)

        db_session.refresh(resolved)
        assert resolved.version == version
        assert resolved.approved_by is None
        assert len(resolved.change_history) == history_length


class TestExpiry:
    """Test deadline expiry and the escalation sweep."""

    def test_expired_conflicts_are_listed_not_changed(self, db_session, conflict):
        assign(db_session, conflict, deadline=NOW + timedelta(hours=1))
        db_session.commit()

        assert find_expired_conflicts(db_session, now=NOW) == []
        expired = find_expired_conflicts(db_session, now=NOW + timedelta(hours=2))

        assert [c.id for c in expired] == [conflict.id]
        assert expired[0].state == "en_revision"

    def test_sweep_escalates_conflicts_under_review(self, db_session, conflict):
        assign(db_session, conflict, deadline=NOW + timedelta(hours=1))
        db_session.commit()

        result = escalate_expired_conflicts(db_session, MANAGER, now=NOW + timedelta(hours=2))

        assert result.escalated == [conflict.id]
        assert result.errors == []
        assert conflict.state == "escalado"
        assert conflict.escalated_to == MANAGER

    def test_sweep_skips_other_states(self, db_session, conflict):
        assign(db_session, conflict, deadline=NOW + timedelta(hours=1))
        transition_conflict(db_session, conflict.id, "start_resolution", TransitionPayload(), NOW)
        db_session.commit()

        result = escalate_expired_conflicts(db_session, MANAGER, now=NOW + timedelta(hours=2))

        assert result.escalated == []
        assert result.skipped == [conflict.id]

    def test_sweep_filters_by_event(self, db_session, conflict):
        assign(db_session, conflict, deadline=NOW + timedelta(hours=1))
        db_session.commit()

        result = escalate_expired_conflicts(db_session, MANAGER, event_id=uuid.uuid4(), now=NOW + timedelta(hours=2))

        assert result.escalated == []
