"""
Activity conflict detection service.

Loads an event's active activities, runs the pairwise detector and stores
each finding that has no active record yet. Re-running on an unchanged
event creates nothing new.

The read-then-insert check is backed by the partial unique index on
(activity pair, kind) for active rows: a concurrent run that inserts the
same conflict first makes our insert fail with IntegrityError, which is
treated as "already exists".
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from expo_conflicts import repositories
from expo_conflicts.config import get_settings
from expo_conflicts.engine.activity_detector import canonical_pair, detect_conflicts, detect_pair_conflicts
from expo_conflicts.engine.errors import ConstraintViolationError, ItemError, NotFoundError
from expo_conflicts.engine.records import (
    ConflictFinding,
    ConflictKind,
    DetectionMethod,
    Severity,
    details_payload,
)
from expo_conflicts.models.base import utcnow
from expo_conflicts.models.conflicts import ScheduleConflict

logger = logging.getLogger(__name__)


@dataclass
class DetectionResult:
    """Outcome of one detection run."""

    total_found: int = 0
    newly_created: int = 0
    records: list[ScheduleConflict] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)


def _history_entry(action: str, actor_id: Optional[UUID], new_state: str) -> dict[str, Any]:
    return {
        "action": action,
        "actor_id": str(actor_id) if actor_id is not None else None,
        "previous_state": None,
        "new_state": new_state,
        "timestamp": utcnow().isoformat(),
    }


def _build_conflict(
    finding: ConflictFinding,
    method: DetectionMethod,
    actor_id: Optional[UUID],
) -> ScheduleConflict:
    settings = get_settings()
    return ScheduleConflict(
        event_id=finding.event_id,
        activity_a_id=finding.activity_a_id,
        activity_b_id=finding.activity_b_id,
        kind=finding.kind.value,
        severity=finding.severity.value,
        description=finding.description,
        details=details_payload(finding.details),
        affected_participants=finding.affected_participants,
        state="detected",
        detection_method=method.value,
        priority=settings.default_conflict_priority,
        is_urgent=False,
        notification_log=[],
        change_history=[_history_entry("detect", actor_id, "detected")],
        created_by=actor_id,
    )


def _insert_unless_active(session: Session, conflict: ScheduleConflict) -> Optional[ScheduleConflict]:
    """
    Insert a conflict inside a savepoint.

    Returns the new row, or None if the unique index reports an active
    duplicate that appeared after our read.
    """
    try:
        with session.begin_nested():
            session.add(conflict)
    except IntegrityError:
        logger.info(
            f"Conflict {conflict.kind} for {conflict.activity_a_id}/{conflict.activity_b_id} "
            f"was inserted concurrently, skipping"
        )
        return None
    return conflict


def detect_activity_conflicts(
    session: Session,
    event_id: UUID,
    actor_id: Optional[UUID] = None,
) -> DetectionResult:
    """
    Detect and store schedule conflicts for one event.

    Args:
        session: Database session
        event_id: Event to scan
        actor_id: Who triggered the run (recorded as creator)

    Returns:
        DetectionResult with the number of findings, how many were stored
        as new records, every active record matching a finding, and
        per-activity computation errors
    """
    activities = repositories.schedulable_activities_for_event(session, event_id)
    report = detect_conflicts(repositories.to_activity_record(a) for a in activities)
    result = DetectionResult(total_found=len(report.findings), errors=report.errors)

    for finding in report.findings:
        existing = repositories.find_active_conflict(
            session, finding.activity_a_id, finding.activity_b_id, finding.kind.value
        )
        if existing is not None:
            result.records.append(existing)
            continue

        created = _insert_unless_active(session, _build_conflict(finding, DetectionMethod.AUTOMATIC, actor_id))
        if created is None:
            existing = repositories.find_active_conflict(
                session, finding.activity_a_id, finding.activity_b_id, finding.kind.value
            )
            if existing is not None:
                result.records.append(existing)
            continue

        result.newly_created += 1
        result.records.append(created)

    logger.info(
        f"Detection for event {event_id}: {result.total_found} found, "
        f"{result.newly_created} new, {len(result.errors)} activity errors",
        extra={
            "event_id": str(event_id),
            "total_found": result.total_found,
            "newly_created": result.newly_created,
        },
    )
    return result


def report_conflict(
    session: Session,
    activity_a_id: UUID,
    activity_b_id: UUID,
    kind: str,
    description: str,
    severity: Optional[str] = None,
    method: str = DetectionMethod.MANUAL.value,
    actor_id: Optional[UUID] = None,
) -> ScheduleConflict:
    """
    Record a conflict noticed by a person rather than by a detection run.

    When the detector also sees this kind of conflict for the pair, its
    severity and detail payload are used unless a severity is given.

    Raises:
        NotFoundError: If either activity does not exist
        ConstraintViolationError: If the activities belong to different
            events, an argument is invalid, or an active conflict of this
            kind already exists for the pair
    """
    try:
        kind_value = ConflictKind(kind)
        method_value = DetectionMethod(method)
        severity_value = Severity(severity) if severity is not None else None
    except ValueError as e:
        raise ConstraintViolationError(str(e)) from e

    if activity_a_id == activity_b_id:
        raise ConstraintViolationError("A conflict needs two different activities")

    first = repositories.get_activity(session, activity_a_id)
    second = repositories.get_activity(session, activity_b_id)
    for activity_id, activity in ((activity_a_id, first), (activity_b_id, second)):
        if activity is None:
            raise NotFoundError(f"Activity {activity_id} not found", details={"activity_id": str(activity_id)})
    if first.event_id != second.event_id:
        raise ConstraintViolationError("Activities belong to different events")

    if repositories.find_active_conflict(session, activity_a_id, activity_b_id, kind_value.value):
        raise ConstraintViolationError(
            f"An active {kind_value.value} conflict already exists for this pair",
            details={"kind": kind_value.value},
        )

    a, b = canonical_pair(repositories.to_activity_record(first), repositories.to_activity_record(second))
    details: dict[str, Any] = {"kind": kind_value.value}
    detected_severity = Severity.MEDIUM
    affected = a.registered_participants + b.registered_participants
    if a.start and a.end and b.start and b.end:
        for finding in detect_pair_conflicts(a, b):
            if finding.kind == kind_value:
                details = details_payload(finding.details)
                detected_severity = finding.severity
                affected = finding.affected_participants

    settings = get_settings()
    conflict = ScheduleConflict(
        event_id=a.event_id,
        activity_a_id=a.id,
        activity_b_id=b.id,
        kind=kind_value.value,
        severity=(severity_value or detected_severity).value,
        description=description,
        details=details,
        affected_participants=affected,
        state="detected",
        detection_method=method_value.value,
        priority=settings.default_conflict_priority,
        is_urgent=False,
        notification_log=[],
        change_history=[_history_entry("report", actor_id, "detected")],
        created_by=actor_id,
    )
    if _insert_unless_active(session, conflict) is None:
        raise ConstraintViolationError(
            f"An active {kind_value.value} conflict already exists for this pair",
            details={"kind": kind_value.value},
        )

    logger.info(f"Conflict {conflict.id} reported ({kind_value.value}) by {actor_id}")
    return conflict


def conflict_statistics(session: Session, event_id: UUID) -> dict[str, Any]:
    """Counts of an event's schedule conflicts by state, kind and severity."""
    conflicts = repositories.schedule_conflicts_for_event(session, event_id)
    by_state = Counter(c.state for c in conflicts)
    return {
        "event_id": str(event_id),
        "total": len(conflicts),
        "by_state": dict(by_state),
        "by_kind": dict(Counter(c.kind for c in conflicts)),
        "by_severity": dict(Counter(c.severity for c in conflicts)),
        "resolved": by_state.get("resuelto", 0),
        "pending": sum(1 for c in conflicts if c.is_active),
    }
