"""
Conflict models.

Entities:
- ScheduleConflict: Collision between two activities of an event
- StandConflict: Several companies competing for the same stand

Both share the workflow columns of WorkflowColumns and carry a `version`
column that SQLAlchemy checks on every UPDATE, so each state transition is
a compare-and-swap against the version that was read.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expo_conflicts.models.activities import Activity
from expo_conflicts.models.base import GUID, BaseModel, JSONType

# Partial index predicate shared by the "one active conflict" constraints
ACTIVE_CONFLICT_PREDICATE = (
    "state NOT IN ('resuelto', 'ignorado', 'cancelado') AND deleted_at IS NULL"
)


class WorkflowColumns:
    """Workflow, resolution, approval and audit columns shared by both conflict types."""

    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="detected",
        index=True,
        doc="detected, en_revision, en_resolucion, resuelto, escalado, ignorado, cancelado"
    )

    detection_method: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="automatic",
        doc="automatic, manual or reported"
    )

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=5,
        doc="1 (most urgent) to 10"
    )

    is_urgent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Review
    assigned_to: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    review_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Resolution
    resolution_action: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    resolution_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_hours: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        doc="Hours between review start and resolution"
    )
    ignore_justification: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Approval
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Escalation
    escalated_to: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    escalation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Logs consumed by the notification dispatcher and by auditors
    notification_log: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    change_history: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    # Audit
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)

    @property
    def is_active(self) -> bool:
        return self.state not in ("resuelto", "ignorado", "cancelado") and not self.is_deleted


class ScheduleConflict(WorkflowColumns, BaseModel):
    """
    Conflict between two activities of the same event.

    The pair is stored in canonical order (smaller id first). At most one
    active record exists per (activity pair, kind).
    """

    __tablename__ = "schedule_conflicts"

    event_id: Mapped[uuid.UUID] = mapped_column(GUID, nullable=False, index=True)

    activity_a_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("activities.id"),
        nullable=False,
    )

    activity_b_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("activities.id"),
        nullable=False,
    )

    kind: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        doc="time_overlap, same_location, same_speaker, same_resource or same_track"
    )

    severity: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="low, medium, high or critical"
    )

    details: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        doc="Kind-tagged detail payload"
    )

    affected_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    activity_a: Mapped["Activity"] = relationship("Activity", foreign_keys="ScheduleConflict.activity_a_id")
    activity_b: Mapped["Activity"] = relationship("Activity", foreign_keys="ScheduleConflict.activity_b_id")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_schedule_conflict_active_pair_kind",
            "activity_a_id",
            "activity_b_id",
            "kind",
            unique=True,
            sqlite_where=text(ACTIVE_CONFLICT_PREDICATE),
            postgresql_where=text(ACTIVE_CONFLICT_PREDICATE),
        ),
        Index("idx_schedule_conflict_event_state", "event_id", "state"),
    )


class StandConflict(WorkflowColumns, BaseModel):
    """
    Several companies competing for one stand.

    `companies` holds the competing claims (company id, name, score,
    request id). `assigned_company`, once set, is one of them; the rest are
    listed in `compensated_companies`.
    """

    __tablename__ = "stand_conflicts"

    event_id: Mapped[uuid.UUID] = mapped_column(GUID, nullable=False, index=True)

    stand_id: Mapped[uuid.UUID] = mapped_column(GUID, nullable=False)

    kind: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="multiple_requests",
        doc="multiple_requests, overbooking, incompatibility, schedule_clash or other"
    )

    companies: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    request_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    resolution_priority: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")

    estimated_impact: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")

    assigned_company: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)

    compensated_companies: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "uq_stand_conflict_active_stand",
            "event_id",
            "stand_id",
            unique=True,
            sqlite_where=text(ACTIVE_CONFLICT_PREDICATE),
            postgresql_where=text(ACTIVE_CONFLICT_PREDICATE),
        ),
    )

    @property
    def company_ids(self) -> list[uuid.UUID]:
        return [uuid.UUID(entry["company_id"]) for entry in self.companies]
