"""
Persistence-free conflict engine.

Pure functions over the dataclass records in engine.records: overlap
primitives, detectors, scoring, slot scheduling and the workflow state
machines. Services wrap these with database access.
"""

from expo_conflicts.engine.activity_detector import detect_conflicts, detect_pair_conflicts
from expo_conflicts.engine.errors import (
    ComputationError,
    ConstraintViolationError,
    EngineError,
    InvalidTransitionError,
    ItemError,
    NotFoundError,
)
from expo_conflicts.engine.lifecycle import (
    TransitionAction,
    TransitionPayload,
    apply_transition,
    is_expired,
)
from expo_conflicts.engine.scheduling import auto_schedule, generate_slots, suggest_slots
from expo_conflicts.engine.scoring import compute_priority_score
from expo_conflicts.engine.stand_detector import detect_stand_conflicts
from expo_conflicts.engine.timeline import overlap_minutes, overlaps

__all__ = [
    "ComputationError",
    "ConstraintViolationError",
    "EngineError",
    "InvalidTransitionError",
    "ItemError",
    "NotFoundError",
    "TransitionAction",
    "TransitionPayload",
    "apply_transition",
    "auto_schedule",
    "compute_priority_score",
    "detect_conflicts",
    "detect_pair_conflicts",
    "detect_stand_conflicts",
    "generate_slots",
    "is_expired",
    "overlap_minutes",
    "overlaps",
    "suggest_slots",
]
