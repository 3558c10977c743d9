"""
Named repository queries and row-to-record loaders.

Every query states its filters explicitly (event, state set, tombstone
exclusion); there are no ambient default scopes. Loaders convert ORM rows
into the engine's dataclass records.
"""

from datetime import datetime
from typing import Iterable, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session, selectinload

from expo_conflicts.engine.records import (
    INACTIVE_ACTIVITY_STATES,
    PENDING_REQUEST_STATES,
    TERMINAL_STATES,
    ActivityRecord,
    ActivityState,
    AssignmentMode,
    CompanyHistory,
    Modality,
    RequestRecord,
    RequestState,
    ResourceAssignment,
    SpeakerAssignment,
)
from expo_conflicts.models.activities import Activity
from expo_conflicts.models.companies import AssignmentRequest, Company
from expo_conflicts.models.conflicts import ScheduleConflict, StandConflict
from expo_conflicts.models.history import ResolutionHistoryEntry

_INACTIVE_ACTIVITY_VALUES = [s.value for s in INACTIVE_ACTIVITY_STATES]
_TERMINAL_VALUES = [s.value for s in TERMINAL_STATES]
_PENDING_REQUEST_VALUES = [s.value for s in PENDING_REQUEST_STATES]

AnyConflict = Union[ScheduleConflict, StandConflict]


# =============================================================================
# Activity Queries
# =============================================================================


def get_activity(session: Session, activity_id: UUID) -> Optional[Activity]:
    """Live activity by id, or None if missing or tombstoned."""
    stmt = (
        select(Activity)
        .where(and_(Activity.id == activity_id, Activity.live()))
        .options(selectinload(Activity.speakers), selectinload(Activity.resources))
    )
    return session.scalars(stmt).first()


def schedulable_activities_for_event(session: Session, event_id: UUID) -> Sequence[Activity]:
    """
    Live, non-draft, non-cancelled activities of an event.

    Speakers and resources are eagerly loaded for the detectors.
    """
    stmt = (
        select(Activity)
        .where(
            and_(
                Activity.event_id == event_id,
                Activity.live(),
                Activity.state.not_in(_INACTIVE_ACTIVITY_VALUES),
            )
        )
        .options(selectinload(Activity.speakers), selectinload(Activity.resources))
        .order_by(Activity.start_time, Activity.id)
    )
    return session.scalars(stmt).all()


def busy_ranges_for_event(session: Session, event_id: UUID) -> list[tuple[datetime, datetime]]:
    """Time ranges already booked by active activities of an event."""
    stmt = select(Activity.start_time, Activity.end_time).where(
        and_(
            Activity.event_id == event_id,
            Activity.live(),
            Activity.state.not_in(_INACTIVE_ACTIVITY_VALUES),
            Activity.start_time.is_not(None),
            Activity.end_time.is_not(None),
            Activity.end_time > Activity.start_time,
        )
    )
    return [(start, end) for start, end in session.execute(stmt).all()]


def unscheduled_activities_for_event(
    session: Session,
    event_id: UUID,
    activity_ids: Optional[Iterable[UUID]] = None,
) -> Sequence[Activity]:
    """
    Live activities of an event that have no time range yet.

    Args:
        session: Database session
        event_id: Event to query
        activity_ids: Restrict to these ids (all unscheduled activities if None)
    """
    conditions = [
        Activity.event_id == event_id,
        Activity.live(),
        Activity.state != ActivityState.CANCELLED.value,
        or_(Activity.start_time.is_(None), Activity.end_time.is_(None)),
    ]
    if activity_ids is not None:
        conditions.append(Activity.id.in_(list(activity_ids)))

    stmt = select(Activity).where(and_(*conditions)).order_by(Activity.created_at, Activity.id)
    return session.scalars(stmt).all()


def to_activity_record(activity: Activity) -> ActivityRecord:
    return ActivityRecord(
        id=activity.id,
        event_id=activity.event_id,
        start=activity.start_time,
        end=activity.end_time,
        title=activity.title,
        activity_type=activity.activity_type,
        location=activity.location,
        modality=Modality(activity.modality),
        track_id=activity.track_id,
        speakers=[SpeakerAssignment(s.speaker_id, s.role) for s in activity.speakers if not s.is_deleted],
        resources=[
            ResourceAssignment(r.resource_id, r.is_critical) for r in activity.resources if not r.is_deleted
        ],
        registered_participants=activity.registered_participants or 0,
        state=ActivityState(activity.state),
        duration_minutes=activity.duration_minutes,
    )


# =============================================================================
# Schedule Conflict Queries
# =============================================================================


def find_active_conflict(
    session: Session,
    activity_a_id: UUID,
    activity_b_id: UUID,
    kind: str,
) -> Optional[ScheduleConflict]:
    """
    Active conflict for an unordered activity pair and kind.

    Both orderings are checked so rows written before canonical ordering
    are still found.
    """
    pair = or_(
        and_(ScheduleConflict.activity_a_id == activity_a_id, ScheduleConflict.activity_b_id == activity_b_id),
        and_(ScheduleConflict.activity_a_id == activity_b_id, ScheduleConflict.activity_b_id == activity_a_id),
    )
    stmt = select(ScheduleConflict).where(
        and_(
            pair,
            ScheduleConflict.kind == kind,
            ScheduleConflict.state.not_in(_TERMINAL_VALUES),
            ScheduleConflict.live(),
        )
    )
    return session.scalars(stmt).first()


def active_conflicts_for_event(session: Session, event_id: UUID) -> Sequence[ScheduleConflict]:
    """Non-terminal, live schedule conflicts of an event, most severe first by priority."""
    stmt = (
        select(ScheduleConflict)
        .where(
            and_(
                ScheduleConflict.event_id == event_id,
                ScheduleConflict.state.not_in(_TERMINAL_VALUES),
                ScheduleConflict.live(),
            )
        )
        .order_by(ScheduleConflict.priority, ScheduleConflict.created_at, ScheduleConflict.id)
    )
    return session.scalars(stmt).all()


def schedule_conflicts_for_event(session: Session, event_id: UUID) -> Sequence[ScheduleConflict]:
    """Every live schedule conflict of an event, in any state."""
    stmt = (
        select(ScheduleConflict)
        .where(and_(ScheduleConflict.event_id == event_id, ScheduleConflict.live()))
        .order_by(ScheduleConflict.created_at, ScheduleConflict.id)
    )
    return session.scalars(stmt).all()


def get_schedule_conflict(session: Session, conflict_id: UUID) -> Optional[ScheduleConflict]:
    stmt = select(ScheduleConflict).where(
        and_(ScheduleConflict.id == conflict_id, ScheduleConflict.live())
    )
    return session.scalars(stmt).first()


# =============================================================================
# Stand Conflict Queries
# =============================================================================


def get_stand_conflict(session: Session, conflict_id: UUID) -> Optional[StandConflict]:
    stmt = select(StandConflict).where(
        and_(StandConflict.id == conflict_id, StandConflict.live())
    )
    return session.scalars(stmt).first()


def find_active_stand_conflict(session: Session, event_id: UUID, stand_id: UUID) -> Optional[StandConflict]:
    stmt = select(StandConflict).where(
        and_(
            StandConflict.event_id == event_id,
            StandConflict.stand_id == stand_id,
            StandConflict.state.not_in(_TERMINAL_VALUES),
            StandConflict.live(),
        )
    )
    return session.scalars(stmt).first()


def stand_conflicts_for_event(session: Session, event_id: UUID) -> Sequence[StandConflict]:
    stmt = (
        select(StandConflict)
        .where(and_(StandConflict.event_id == event_id, StandConflict.live()))
        .order_by(StandConflict.created_at, StandConflict.id)
    )
    return session.scalars(stmt).all()


def get_conflict(session: Session, conflict_id: UUID) -> Optional[AnyConflict]:
    """Schedule or stand conflict by id."""
    return get_schedule_conflict(session, conflict_id) or get_stand_conflict(session, conflict_id)


def conflicts_with_deadline(session: Session, event_id: Optional[UUID] = None) -> list[AnyConflict]:
    """
    Live, non-terminal conflicts of both types that have a deadline.

    Args:
        session: Database session
        event_id: Restrict to one event (all events if None)
    """
    results: list[AnyConflict] = []
    for model in (ScheduleConflict, StandConflict):
        conditions = [
            model.deadline.is_not(None),
            model.state.not_in(_TERMINAL_VALUES),
            model.live(),
        ]
        if event_id is not None:
            conditions.append(model.event_id == event_id)
        stmt = select(model).where(and_(*conditions)).order_by(model.deadline, model.id)
        results.extend(session.scalars(stmt).all())
    return results


# =============================================================================
# Company and Request Queries
# =============================================================================


def get_company(session: Session, company_id: UUID) -> Optional[Company]:
    stmt = select(Company).where(and_(Company.id == company_id, Company.live()))
    return session.scalars(stmt).first()


def companies_by_id(session: Session, company_ids: Iterable[UUID]) -> dict[UUID, Company]:
    ids = list(set(company_ids))
    if not ids:
        return {}
    stmt = select(Company).where(Company.id.in_(ids))
    return {company.id: company for company in session.scalars(stmt).all()}


def to_company_history(company: Company) -> CompanyHistory:
    return CompanyHistory(
        company_id=company.id,
        name=company.name,
        participation_count=company.participation_count or 0,
        average_rating=company.average_rating,
        first_participation_at=company.first_participation_at,
    )


def get_request(session: Session, request_id: UUID) -> Optional[AssignmentRequest]:
    stmt = select(AssignmentRequest).where(
        and_(AssignmentRequest.id == request_id, AssignmentRequest.live())
    )
    return session.scalars(stmt).first()


def find_live_request(session: Session, company_id: UUID, event_id: UUID) -> Optional[AssignmentRequest]:
    """The company's non-deleted request for an event, if any."""
    stmt = select(AssignmentRequest).where(
        and_(
            AssignmentRequest.company_id == company_id,
            AssignmentRequest.event_id == event_id,
            AssignmentRequest.live(),
        )
    )
    return session.scalars(stmt).first()


def pending_requests_for_event(session: Session, event_id: UUID) -> Sequence[AssignmentRequest]:
    """Live requests still competing for a stand (requested, in_review, approved)."""
    stmt = (
        select(AssignmentRequest)
        .where(
            and_(
                AssignmentRequest.event_id == event_id,
                AssignmentRequest.live(),
                AssignmentRequest.state.in_(_PENDING_REQUEST_VALUES),
            )
        )
        .order_by(AssignmentRequest.requested_at, AssignmentRequest.id)
    )
    return session.scalars(stmt).all()


def requests_by_id(session: Session, request_ids: Iterable[UUID]) -> Sequence[AssignmentRequest]:
    ids = list(request_ids)
    if not ids:
        return []
    stmt = select(AssignmentRequest).where(
        and_(AssignmentRequest.id.in_(ids), AssignmentRequest.live())
    )
    return session.scalars(stmt).all()


def to_request_record(request: AssignmentRequest) -> RequestRecord:
    return RequestRecord(
        id=request.id,
        company_id=request.company_id,
        event_id=request.event_id,
        stand_id=request.stand_id,
        state=RequestState(request.state),
        requested_at=request.requested_at,
        mode=AssignmentMode(request.mode),
    )


# =============================================================================
# History Queries
# =============================================================================


def get_history_entry(session: Session, entry_id: UUID) -> Optional[ResolutionHistoryEntry]:
    return session.get(ResolutionHistoryEntry, entry_id)


def find_reversal(session: Session, entry_id: UUID) -> Optional[ResolutionHistoryEntry]:
    """The entry that reverted entry_id, if it has been reverted."""
    stmt = select(ResolutionHistoryEntry).where(ResolutionHistoryEntry.reverts_entry_id == entry_id)
    return session.scalars(stmt).first()


def history_for_event(
    session: Session,
    event_id: UUID,
    conflict_id: Optional[UUID] = None,
) -> Sequence[ResolutionHistoryEntry]:
    """History entries of an event in recording order."""
    conditions = [ResolutionHistoryEntry.event_id == event_id]
    if conflict_id is not None:
        conditions.append(ResolutionHistoryEntry.conflict_id == conflict_id)
    stmt = (
        select(ResolutionHistoryEntry)
        .where(and_(*conditions))
        .order_by(ResolutionHistoryEntry.recorded_at, ResolutionHistoryEntry.id)
    )
    return session.scalars(stmt).all()
