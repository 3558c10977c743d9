"""
Plain data records consumed and produced by the engine.

The engine never touches the ORM. Repositories convert rows into these
records, detectors and schedulers work on them, and services persist the
results. Enum values double as the strings stored in the database.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from expo_conflicts.engine.errors import ItemError
from expo_conflicts.engine.timeline import as_utc


# =============================================================================
# Enumerations
# =============================================================================


class ConflictKind(str, Enum):
    TIME_OVERLAP = "time_overlap"
    SAME_LOCATION = "same_location"
    SAME_SPEAKER = "same_speaker"
    SAME_RESOURCE = "same_resource"
    SAME_TRACK = "same_track"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class ConflictState(str, Enum):
    """Workflow states shared by schedule and stand conflicts."""

    DETECTED = "detected"
    EN_REVISION = "en_revision"
    EN_RESOLUCION = "en_resolucion"
    RESUELTO = "resuelto"
    ESCALADO = "escalado"
    IGNORADO = "ignorado"
    CANCELADO = "cancelado"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {ConflictState.RESUELTO, ConflictState.IGNORADO, ConflictState.CANCELADO}
)


class DetectionMethod(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"
    REPORTED = "reported"


class Modality(str, Enum):
    IN_PERSON = "in_person"
    VIRTUAL = "virtual"
    HYBRID = "hybrid"

    @property
    def is_physical(self) -> bool:
        return self in (Modality.IN_PERSON, Modality.HYBRID)


class ActivityState(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Activities in these states never take part in detection or block slots
INACTIVE_ACTIVITY_STATES = frozenset({ActivityState.DRAFT, ActivityState.CANCELLED})


class ResolutionAction(str, Enum):
    """Actions a reviewer may record when resolving a schedule conflict."""

    CHANGE_TIME = "change_time"
    CHANGE_LOCATION = "change_location"
    CHANGE_SPEAKER = "change_speaker"
    CHANGE_RESOURCE = "change_resource"
    CANCEL_ACTIVITY = "cancel_activity"
    MERGE_ACTIVITIES = "merge_activities"
    NONE = "none"


class StandConflictKind(str, Enum):
    MULTIPLE_REQUESTS = "multiple_requests"
    OVERBOOKING = "overbooking"
    INCOMPATIBILITY = "incompatibility"
    SCHEDULE_CLASH = "schedule_clash"
    OTHER = "other"


class RequestState(str, Enum):
    REQUESTED = "requested"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    ASSIGNED = "assigned"
    CANCELLED = "cancelled"


# Requests that still compete for a stand
PENDING_REQUEST_STATES = frozenset(
    {RequestState.REQUESTED, RequestState.IN_REVIEW, RequestState.APPROVED}
)


class AssignmentMode(str, Enum):
    DIRECT_PICK = "direct_pick"
    MANUAL = "manual"
    AUTOMATIC = "automatic"


# =============================================================================
# Activity records
# =============================================================================


@dataclass(frozen=True)
class SpeakerAssignment:
    speaker_id: UUID
    role: str = "speaker"


@dataclass(frozen=True)
class ResourceAssignment:
    resource_id: UUID
    # None means the criticality was never recorded; treated as non-critical
    is_critical: Optional[bool] = None


@dataclass
class ActivityRecord:
    """An activity as seen by the detectors and the scheduler."""

    id: UUID
    event_id: UUID
    start: Optional[datetime]
    end: Optional[datetime]
    title: str = ""
    activity_type: str = "other"
    location: Optional[str] = None
    modality: Modality = Modality.IN_PERSON
    track_id: Optional[UUID] = None
    speakers: list[SpeakerAssignment] = field(default_factory=list)
    resources: list[ResourceAssignment] = field(default_factory=list)
    registered_participants: int = 0
    state: ActivityState = ActivityState.SCHEDULED
    duration_minutes: Optional[int] = None


# =============================================================================
# Conflict detail payloads (one tagged record per kind)
# =============================================================================


@dataclass(frozen=True)
class TimeOverlapDetails:
    overlap_minutes: int
    overlap_percent: int
    a_start: datetime
    a_end: datetime
    b_start: datetime
    b_end: datetime

    def __post_init__(self):
        if self.overlap_minutes < 0:
            raise ValueError("overlap_minutes must be non-negative")


@dataclass(frozen=True)
class LocationDetails:
    location: str
    modality_a: Modality
    modality_b: Modality


@dataclass(frozen=True)
class SpeakerDetails:
    speaker_ids: tuple[UUID, ...]
    roles_a: tuple[str, ...]
    roles_b: tuple[str, ...]

    def __post_init__(self):
        if not self.speaker_ids:
            raise ValueError("speaker conflict needs at least one shared speaker")


@dataclass(frozen=True)
class ResourceDetails:
    resource_ids: tuple[UUID, ...]
    critical_resource_ids: tuple[UUID, ...]

    def __post_init__(self):
        if not self.resource_ids:
            raise ValueError("resource conflict needs at least one shared resource")


@dataclass(frozen=True)
class TrackDetails:
    track_id: UUID


ConflictDetails = TimeOverlapDetails | LocationDetails | SpeakerDetails | ResourceDetails | TrackDetails

_DETAIL_KINDS = {
    TimeOverlapDetails: ConflictKind.TIME_OVERLAP,
    LocationDetails: ConflictKind.SAME_LOCATION,
    SpeakerDetails: ConflictKind.SAME_SPEAKER,
    ResourceDetails: ConflictKind.SAME_RESOURCE,
    TrackDetails: ConflictKind.SAME_TRACK,
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID,)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


def details_payload(details: ConflictDetails) -> dict[str, Any]:
    """Serialize a detail record to the JSON stored on the conflict row."""
    payload = {"kind": _DETAIL_KINDS[type(details)].value}
    payload.update(_jsonable(asdict(details)))
    return payload


# =============================================================================
# Detection output
# =============================================================================


@dataclass
class ConflictFinding:
    """One detected conflict between a canonically ordered activity pair."""

    event_id: UUID
    activity_a_id: UUID
    activity_b_id: UUID
    kind: ConflictKind
    severity: Severity
    description: str
    details: ConflictDetails
    affected_participants: int = 0

    def __post_init__(self):
        if str(self.activity_a_id) > str(self.activity_b_id):
            raise ValueError("activity pair must be stored in canonical order")
        if _DETAIL_KINDS[type(self.details)] != self.kind:
            raise ValueError(f"details do not match conflict kind {self.kind.value}")

    @property
    def pair_key(self) -> tuple[str, str]:
        return (str(self.activity_a_id), str(self.activity_b_id))


@dataclass
class DetectionReport:
    findings: list[ConflictFinding] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)


# =============================================================================
# Companies, requests and stand conflicts
# =============================================================================


@dataclass
class CompanyHistory:
    """Participation history used by the priority score."""

    company_id: UUID
    name: str = ""
    participation_count: int = 0
    average_rating: Optional[float] = None
    first_participation_at: Optional[datetime] = None


@dataclass
class RequestRecord:
    id: UUID
    company_id: UUID
    event_id: UUID
    stand_id: Optional[UUID]
    state: RequestState
    requested_at: datetime
    mode: AssignmentMode = AssignmentMode.DIRECT_PICK


@dataclass
class CompanyClaim:
    """A company competing for a stand, with its computed priority score."""

    company_id: UUID
    name: str
    priority_score: float
    request_id: UUID
    requested_at: datetime

    def to_payload(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class StandConflictCandidate:
    event_id: UUID
    stand_id: UUID
    companies: list[CompanyClaim]
    resolution_priority: Severity
    estimated_impact: Severity
    kind: StandConflictKind = StandConflictKind.MULTIPLE_REQUESTS

    @property
    def request_ids(self) -> list[UUID]:
        return [claim.request_id for claim in self.companies]

    @property
    def company_ids(self) -> list[UUID]:
        return [claim.company_id for claim in self.companies]


# =============================================================================
# Slots and scheduling
# =============================================================================


@dataclass
class SlotOptions:
    start_date: Any
    end_date: Any
    slot_minutes: int = 60
    day_start_hour: int = 9
    day_end_hour: int = 18
    allowed_weekdays: list[int] = field(default_factory=lambda: [1, 2, 3, 4, 5])
    excluded_dates: list[Any] = field(default_factory=list)


@dataclass
class Slot:
    start: datetime
    end: datetime
    available: bool = True

    @property
    def duration_minutes(self) -> int:
        """Elapsed minutes, measured in UTC so DST shifts are not counted."""
        return int((as_utc(self.end) - as_utc(self.start)).total_seconds() // 60)


@dataclass
class SlotSet:
    slots: list[Slot] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.slots)

    @property
    def available(self) -> list[Slot]:
        return [slot for slot in self.slots if slot.available]

    @property
    def available_count(self) -> int:
        return len(self.available)

    @property
    def occupied_count(self) -> int:
        return self.total - self.available_count


@dataclass
class ScheduledActivity:
    activity_id: UUID
    activity_type: str
    start: datetime
    end: datetime


@dataclass
class UnscheduledActivity:
    activity_id: UUID
    activity_type: str
    reason: str


@dataclass
class ScheduleResult:
    scheduled: list[ScheduledActivity] = field(default_factory=list)
    unscheduled: list[UnscheduledActivity] = field(default_factory=list)
    slots_used: int = 0
    slots_remaining: int = 0
    errors: list[ItemError] = field(default_factory=list)


@dataclass
class SlotSuggestion:
    start: datetime
    end: datetime
    score: int
