"""
Tests for the activity conflict detection service.
"""

import uuid
from datetime import datetime, timezone

import pytest

from expo_conflicts import repositories
from expo_conflicts.engine.errors import ConstraintViolationError, NotFoundError
from expo_conflicts.services.conflict_detection import (
    conflict_statistics,
    detect_activity_conflicts,
    report_conflict,
)


def at(hour, minute=0):
    return datetime(2026, 3, 2, hour, minute, tzinfo=timezone.utc)


class TestDetectActivityConflicts:
    """Test detection runs against stored activities."""

    def test_stores_one_record_per_kind(self, db_session, event_id, make_activity):
        make_activity("Opening", at(9), at(10), location="Hall 1", participants=40)
        make_activity("Panel", at(9, 30), at(10, 30), location="Hall 1", participants=25)

        result = detect_activity_conflicts(db_session, event_id)

        assert result.total_found == 2
        assert result.newly_created == 2
        assert {c.kind for c in result.records} == {"time_overlap", "same_location"}
        by_kind = {c.kind: c for c in result.records}
        assert by_kind["time_overlap"].severity == "high"
        assert by_kind["time_overlap"].affected_participants == 65
        assert by_kind["same_location"].affected_participants == 40
        assert by_kind["time_overlap"].details["kind"] == "time_overlap"
        assert all(c.state == "detected" for c in result.records)
        assert all(str(c.activity_a_id) < str(c.activity_b_id) for c in result.records)

    def test_rerun_creates_nothing(self, db_session, event_id, make_activity):
        make_activity("A", at(9), at(10), location="Hall 1")
        make_activity("B", at(9, 30), at(10, 30), location="Hall 1")

        first = detect_activity_conflicts(db_session, event_id)
        db_session.commit()
        second = detect_activity_conflicts(db_session, event_id)

        assert second.total_found == first.total_found == 2
        assert second.newly_created == 0
        assert {c.id for c in second.records} == {c.id for c in first.records}
        assert len(repositories.schedule_conflicts_for_event(db_session, event_id)) == 2

    def test_resolved_conflict_is_detected_again(self, db_session, event_id, make_activity):
        make_activity("A", at(9), at(10))
        make_activity("B", at(9, 30), at(10, 30))
        (conflict,) = detect_activity_conflicts(db_session, event_id).records
        conflict.state = "resuelto"
        db_session.commit()

        rerun = detect_activity_conflicts(db_session, event_id)

        assert rerun.newly_created == 1
        assert rerun.records[0].id != conflict.id

    def test_draft_and_cancelled_activities_are_ignored(self, db_session, event_id, make_activity):
        make_activity("A", at(9), at(10))
        make_activity("Draft", at(9), at(10), state="draft")
        make_activity("Cancelled", at(9), at(10), state="cancelled")

        assert detect_activity_conflicts(db_session, event_id).total_found == 0

    def test_other_events_are_not_compared(self, db_session, event_id, make_activity):
        make_activity("A", at(9), at(10), location="Hall 1")
        make_activity("B", at(9), at(10), location="Hall 1", event=uuid.uuid4())

        assert detect_activity_conflicts(db_session, event_id).total_found == 0

    def test_malformed_activity_reported(self, db_session, event_id, make_activity):
        make_activity("A", at(9), at(10))
        make_activity("B", at(9, 30), at(10, 30))
        broken = make_activity("Broken", at(11), at(10))

        result = detect_activity_conflicts(db_session, event_id)

        assert result.newly_created == 1
        assert [e.item_id for e in result.errors] == [str(broken.id)]

    def test_records_actor_in_history(self, db_session, event_id, make_activity):
        actor = uuid.uuid4()
        make_activity("A", at(9), at(10))
        make_activity("B", at(9, 30), at(10, 30))

        (conflict,) = detect_activity_conflicts(db_session, event_id, actor_id=actor).records

        assert conflict.created_by == actor
        assert conflict.change_history[0]["actor_id"] == str(actor)
        assert conflict.change_history[0]["new_state"] == "detected"


class TestReportConflict:
    """Test manually reported conflicts."""

    def test_report_uses_detected_details(self, db_session, event_id, make_activity):
        a = make_activity("A", at(9), at(10))
        b = make_activity("B", at(9, 30), at(10, 30))

        conflict = report_conflict(db_session, b.id, a.id, "time_overlap", "Noticed at the desk")

        assert conflict.detection_method == "manual"
        assert conflict.severity == "high"
        assert conflict.details["overlap_minutes"] == 30
        assert str(conflict.activity_a_id) < str(conflict.activity_b_id)

    def test_explicit_severity_wins(self, db_session, make_activity):
        a = make_activity("A", at(9), at(10))
        b = make_activity("B", at(12), at(13))

        conflict = report_conflict(
            db_session, a.id, b.id, "same_speaker", "Speaker double booked", severity="critical", method="reported"
        )

        assert conflict.severity == "critical"
        assert conflict.detection_method == "reported"
        assert conflict.details == {"kind": "same_speaker"}

    def test_duplicate_active_conflict_rejected(self, db_session, event_id, make_activity):
        a = make_activity("A", at(9), at(10))
        b = make_activity("B", at(9, 30), at(10, 30))
        detect_activity_conflicts(db_session, event_id)

        with pytest.raises(ConstraintViolationError):
            report_conflict(db_session, a.id, b.id, "time_overlap", "again")

    def test_unknown_activity(self, db_session, make_activity):
        a = make_activity("A", at(9), at(10))
        with pytest.raises(NotFoundError):
            report_conflict(db_session, a.id, uuid.uuid4(), "time_overlap", "ghost")

    def test_activities_of_different_events(self, db_session, make_activity):
        a = make_activity("A", at(9), at(10))
        b = make_activity("B", at(9), at(10), event=uuid.uuid4())
        with pytest.raises(ConstraintViolationError):
            report_conflict(db_session, a.id, b.id, "time_overlap", "cross event")

    @pytest.mark.parametrize(
        "kind, severity, method",
        [("double_booking", None, "manual"), ("time_overlap", "extreme", "manual"), ("time_overlap", None, "psychic")],
    )
    def test_invalid_arguments(self, db_session, make_activity, kind, severity, method):
        a = make_activity("A", at(9), at(10))
        b = make_activity("B", at(9, 30), at(10, 30))
        with pytest.raises(ConstraintViolationError):
            report_conflict(db_session, a.id, b.id, kind, "bad", severity=severity, method=method)

    def test_same_activity_twice(self, db_session, make_activity):
        a = make_activity("A", at(9), at(10))
        with pytest.raises(ConstraintViolationError):
            report_conflict(db_session, a.id, a.id, "time_overlap", "self")


class TestConflictStatistics:
    def test_counts(self, db_session, event_id, make_activity):
        make_activity("A", at(9), at(10), location="Hall 1")
        make_activity("B", at(9, 30), at(10, 30), location="Hall 1")
        records = detect_activity_conflicts(db_session, event_id).records
        records[0].state = "resuelto"
        db_session.commit()

        stats = conflict_statistics(db_session, event_id)

        assert stats["total"] == 2
        assert stats["resolved"] == 1
        assert stats["pending"] == 1
        assert stats["by_kind"] == {"time_overlap": 1, "same_location": 1}
        assert stats["by_severity"] == {"high": 2}
