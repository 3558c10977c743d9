"""
SQLAlchemy models for the conflict engine.

Import all models here so Alembic can detect them for migrations.
"""

from expo_conflicts.models.base import Base, BaseModel, GUID, JSONType, utcnow
from expo_conflicts.models.activities import Activity, ActivitySpeaker, ActivityResource
from expo_conflicts.models.companies import Company, AssignmentRequest
from expo_conflicts.models.conflicts import ScheduleConflict, StandConflict
from expo_conflicts.models.history import ResolutionHistoryEntry

__all__ = [
    # Base
    "Base",
    "BaseModel",
    "GUID",
    "JSONType",
    "utcnow",
    # Activities
    "Activity",
    "ActivitySpeaker",
    "ActivityResource",
    # Companies
    "Company",
    "AssignmentRequest",
    # Conflicts
    "ScheduleConflict",
    "StandConflict",
    # History
    "ResolutionHistoryEntry",
]
