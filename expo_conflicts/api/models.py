"""
Pydantic request and response models for the conflict engine API.
"""

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Request Models
# =============================================================================


class ReportConflictRequest(BaseModel):
    """A conflict noticed by a person."""

    activity_a_id: UUID
    activity_b_id: UUID
    kind: Literal["time_overlap", "same_location", "same_speaker", "same_resource", "same_track"]
    description: str = Field(..., min_length=3, max_length=2000)
    severity: Optional[Literal["low", "medium", "high", "critical"]] = None
    detection_method: Literal["manual", "reported"] = "manual"


class TransitionRequest(BaseModel):
    """
    Workflow action on a conflict.

    Required fields per action:
    - assign: reviewer_id (deadline optional)
    - resolve: resolution_action, description, resolver_id (+ assigned_company for stands)
    - escalate: target, reason
    - ignore: justification
    - cancel: reason
    - approve: approver_id
    """

    action: Literal["assign", "start_resolution", "resolve", "escalate", "ignore", "cancel", "approve"]
    reviewer_id: Optional[UUID] = None
    deadline: Optional[datetime] = None
    resolution_action: Optional[str] = None
    description: Optional[str] = None
    resolver_id: Optional[UUID] = None
    assigned_company: Optional[UUID] = None
    target: Optional[UUID] = None
    reason: Optional[str] = None
    justification: Optional[str] = None
    approver_id: Optional[UUID] = None


class EscalationSweepRequest(BaseModel):
    target_id: UUID = Field(..., description="Who receives the escalated conflicts")
    event_id: Optional[UUID] = Field(None, description="Restrict the sweep to one event")


class SlotOptionsRequest(BaseModel):
    """Slot generation options. Omitted values fall back to settings."""

    start_date: str = Field(..., description="First day (any parseable date)", examples=["2026-03-02"])
    end_date: str = Field(..., description="Last day, inclusive", examples=["2026-03-06"])
    slot_minutes: Optional[int] = Field(None, ge=5, le=24 * 60)
    day_start_hour: Optional[int] = Field(None, ge=0, le=23)
    day_end_hour: Optional[int] = Field(None, ge=1, le=24)
    allowed_weekdays: Optional[list[int]] = Field(None, description="ISO weekdays, Monday=1")
    excluded_dates: list[str] = Field(default_factory=list)

    @field_validator("allowed_weekdays")
    @classmethod
    def validate_weekdays(cls, v: Optional[list[int]]) -> Optional[list[int]]:
        if v is not None and any(d < 1 or d > 7 for d in v):
            raise ValueError("Weekdays must be ISO numbers 1-7")
        return v


class AutoScheduleRequest(SlotOptionsRequest):
    activity_ids: Optional[list[UUID]] = Field(None, description="Activities to place (all unscheduled if omitted)")
    priority_by_type: Optional[dict[str, int]] = None
    margin_minutes: Optional[int] = Field(None, ge=0)


class SuggestSlotsRequest(SlotOptionsRequest):
    limit: int = Field(default=5, ge=1, le=50)


class SubmitAssignmentRequest(BaseModel):
    company_id: UUID
    stand_id: Optional[UUID] = None
    mode: Literal["direct_pick", "manual", "automatic"] = "direct_pick"
    response_deadline: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=2000)


class RequestTransitionRequest(BaseModel):
    action: Literal["review", "approve", "reject", "assign", "cancel"]


class RevertHistoryRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=2000)


# =============================================================================
# Response Models
# =============================================================================


class ItemErrorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    item_id: Optional[str]
    error_type: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class WorkflowFields(BaseModel):
    """Columns shared by both conflict types."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    state: str
    detection_method: str
    description: str
    priority: int
    is_urgent: bool
    assigned_to: Optional[UUID] = None
    review_started_at: Optional[datetime] = None
    deadline: Optional[datetime] = None
    resolution_action: Optional[str] = None
    resolution_description: Optional[str] = None
    resolved_by: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    resolution_hours: Optional[float] = None
    ignore_justification: Optional[str] = None
    cancel_reason: Optional[str] = None
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    escalated_to: Optional[UUID] = None
    escalation_reason: Optional[str] = None
    notification_log: list[dict[str, Any]] = Field(default_factory=list)
    change_history: list[dict[str, Any]] = Field(default_factory=list)
    version: int
    created_at: Optional[datetime] = None


class ScheduleConflictResponse(WorkflowFields):
    conflict_type: Literal["schedule"] = "schedule"
    activity_a_id: UUID
    activity_b_id: UUID
    kind: str
    severity: str
    details: dict[str, Any]
    affected_participants: int


class StandConflictResponse(WorkflowFields):
    conflict_type: Literal["stand"] = "stand"
    stand_id: UUID
    kind: str
    companies: list[dict[str, Any]]
    request_ids: list[str]
    resolution_priority: str
    estimated_impact: str
    assigned_company: Optional[UUID] = None
    compensated_companies: list[str] = Field(default_factory=list)


class DetectionResponse(BaseModel):
    """Result of an activity conflict detection run."""

    total_found: int
    newly_created: int
    records: list[ScheduleConflictResponse]
    errors: list[ItemErrorResponse]


class ConflictStatisticsResponse(BaseModel):
    event_id: str
    total: int
    by_state: dict[str, int]
    by_kind: dict[str, int]
    by_severity: dict[str, int]
    resolved: int
    pending: int


class StandStatisticsResponse(BaseModel):
    event_id: str
    total: int
    active: int
    expired: int
    resolved: int
    resolution_rate: float
    average_resolution_hours: Optional[float] = None


class CompanyClaimResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    company_id: UUID
    name: str
    priority_score: float
    request_id: UUID
    requested_at: datetime


class StandConflictCandidateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_id: UUID
    stand_id: UUID
    kind: str
    resolution_priority: str
    estimated_impact: str
    companies: list[CompanyClaimResponse]


class OpenStandConflictsResponse(BaseModel):
    created: list[StandConflictResponse]
    skipped_stand_ids: list[UUID]


class EscalationSweepResponse(BaseModel):
    escalated: list[UUID]
    skipped: list[UUID]
    errors: list[ItemErrorResponse]


class SlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: datetime
    end: datetime
    available: bool
    duration_minutes: int


class SlotSetResponse(BaseModel):
    total: int
    available: int
    occupied: int
    slots: list[SlotResponse]
    errors: list[ItemErrorResponse]


class ScheduledActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    activity_id: UUID
    activity_type: str
    start: datetime
    end: datetime


class UnscheduledActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    activity_id: UUID
    activity_type: str
    reason: str


class ScheduleSummary(BaseModel):
    scheduled: int
    unscheduled: int
    slots_used: int
    slots_remaining: int


class AutoScheduleResponse(BaseModel):
    scheduled: list[ScheduledActivityResponse]
    unscheduled: list[UnscheduledActivityResponse]
    summary: ScheduleSummary
    errors: list[ItemErrorResponse]


class SlotSuggestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: datetime
    end: datetime
    score: int


class PriorityScoreResponse(BaseModel):
    company_id: UUID
    score: float = Field(..., ge=0, le=100)


class AssignmentRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    event_id: UUID
    stand_id: Optional[UUID] = None
    assigned_stand_id: Optional[UUID] = None
    mode: str
    state: str
    priority_score: float
    requested_at: datetime
    response_deadline: Optional[datetime] = None
    notification_log: list[dict[str, Any]] = Field(default_factory=list)


class HistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    conflict_id: Optional[UUID] = None
    request_id: Optional[UUID] = None
    company_id: Optional[UUID] = None
    stand_before: Optional[UUID] = None
    stand_after: Optional[UUID] = None
    state_before: Optional[str] = None
    state_after: Optional[str] = None
    reason: str
    actor_id: Optional[UUID] = None
    recorded_at: datetime
    reversible: bool
    reverts_entry_id: Optional[UUID] = None


class HealthResponse(BaseModel):
    status: Literal["healthy", "unhealthy"]
    version: str
    database_connected: bool


class ErrorResponse(BaseModel):
    """Error envelope returned for every failed request."""

    error_type: str
    message: str
    retryable: bool = False
    details: dict[str, Any] = Field(default_factory=dict)
