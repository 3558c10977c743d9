"""
Service layer for the conflict engine.

Session-scoped operations combining repository queries with the pure
engine functions.
"""

from expo_conflicts.services.conflict_detection import (
    DetectionResult,
    conflict_statistics,
    detect_activity_conflicts,
    report_conflict,
)
from expo_conflicts.services.scheduling import (
    auto_schedule,
    default_slot_options,
    generate_slots,
    suggest_slots,
)
from expo_conflicts.services.stand_conflicts import (
    OpenStandConflictsResult,
    compute_priority_score,
    detect_stand_conflicts,
    open_stand_conflicts,
    revert_history_entry,
    stand_conflict_statistics,
    submit_assignment_request,
    transition_request,
)
from expo_conflicts.services.workflow import (
    EscalationSweepResult,
    escalate_expired_conflicts,
    find_expired_conflicts,
    transition_conflict,
)

__all__ = [
    # Detection
    "DetectionResult",
    "conflict_statistics",
    "detect_activity_conflicts",
    "report_conflict",
    # Scheduling
    "auto_schedule",
    "default_slot_options",
    "generate_slots",
    "suggest_slots",
    # Stands
    "OpenStandConflictsResult",
    "compute_priority_score",
    "detect_stand_conflicts",
    "open_stand_conflicts",
    "revert_history_entry",
    "stand_conflict_statistics",
    "submit_assignment_request",
    "transition_request",
    # Workflow
    "EscalationSweepResult",
    "escalate_expired_conflicts",
    "find_expired_conflicts",
    "transition_conflict",
]
