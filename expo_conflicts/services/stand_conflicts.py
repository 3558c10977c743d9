"""
Stand assignment service.

Covers request submission and its state machine, priority scoring,
detection of contested stands, persistence of stand conflicts and the
side effects of resolving one (request approval/rejection and history).
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from expo_conflicts import repositories
from expo_conflicts.config import get_settings
from expo_conflicts.engine import scoring
from expo_conflicts.engine.errors import ConstraintViolationError, InvalidTransitionError, NotFoundError
from expo_conflicts.engine.lifecycle import is_expired
from expo_conflicts.engine.records import (
    AssignmentMode,
    ConflictState,
    DetectionMethod,
    RequestState,
    StandConflictCandidate,
)
from expo_conflicts.engine.requests import RequestAction, next_request_state
from expo_conflicts.engine.stand_detector import detect_stand_conflicts as find_contested_stands
from expo_conflicts.models.base import utcnow
from expo_conflicts.models.companies import AssignmentRequest
from expo_conflicts.models.conflicts import StandConflict
from expo_conflicts.models.history import ResolutionHistoryEntry

logger = logging.getLogger(__name__)


@dataclass
class OpenStandConflictsResult:
    created: list[StandConflict] = field(default_factory=list)
    skipped_stand_ids: list[UUID] = field(default_factory=list)


def _today(today: Optional[date]) -> date:
    return today or utcnow().date()


def _notification(kind: str, recipient: Optional[UUID], now: datetime) -> dict[str, Any]:
    return {
        "type": kind,
        "recipient": str(recipient) if recipient is not None else None,
        "channel": get_settings().notification_channel,
        "timestamp": now.isoformat(),
    }


# =============================================================================
# Scoring
# =============================================================================


def compute_priority_score(session: Session, company_id: UUID, today: Optional[date] = None) -> float:
    """
    Priority score in [0, 100] for a company's stand claims.

    Raises:
        NotFoundError: If the company does not exist
    """
    company = repositories.get_company(session, company_id)
    if company is None:
        raise NotFoundError(f"Company {company_id} not found", details={"company_id": str(company_id)})
    return scoring.compute_priority_score(repositories.to_company_history(company), _today(today))


# =============================================================================
# Requests
# =============================================================================


def submit_assignment_request(
    session: Session,
    company_id: UUID,
    event_id: UUID,
    stand_id: Optional[UUID] = None,
    mode: str = AssignmentMode.DIRECT_PICK.value,
    response_deadline: Optional[datetime] = None,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> AssignmentRequest:
    """
    Create a company's stand request for an event.

    The priority score is computed at submission.

    Raises:
        NotFoundError: If the company does not exist
        ConstraintViolationError: If the company already has a live request
            for the event, or a direct pick names no stand
    """
    try:
        mode_value = AssignmentMode(mode)
    except ValueError as e:
        raise ConstraintViolationError(str(e)) from e
    if mode_value == AssignmentMode.DIRECT_PICK and stand_id is None:
        raise ConstraintViolationError("A direct pick request must name a stand")

    company = repositories.get_company(session, company_id)
    if company is None:
        raise NotFoundError(f"Company {company_id} not found", details={"company_id": str(company_id)})

    if repositories.find_live_request(session, company_id, event_id) is not None:
        raise ConstraintViolationError(
            "Company already has a request for this event",
            details={"company_id": str(company_id), "event_id": str(event_id)},
        )

    now = utcnow()
    request = AssignmentRequest(
        company_id=company_id,
        event_id=event_id,
        stand_id=stand_id,
        mode=mode_value.value,
        state=RequestState.REQUESTED.value,
        priority_score=scoring.compute_priority_score(repositories.to_company_history(company), _today(today)),
        requested_at=now,
        response_deadline=response_deadline,
        notes=notes,
        notification_log=[_notification("request_submitted", company_id, now)],
    )
    try:
        with session.begin_nested():
            session.add(request)
    except IntegrityError as e:
        raise ConstraintViolationError("Company already has a request for this event") from e

    logger.info(f"Request {request.id} submitted by company {company_id} for event {event_id}")
    return request


def _move_request(request: AssignmentRequest, action: RequestAction, now: datetime) -> None:
    request.state = next_request_state(RequestState(request.state), action).value
    request.notification_log = request.notification_log + [
        _notification(f"request_{action.value}", request.company_id, now)
    ]


def transition_request(session: Session, request_id: UUID, action: str) -> AssignmentRequest:
    """
    Move a request through its state machine.

    Raises:
        NotFoundError: If the request does not exist
        InvalidTransitionError: If the action is not allowed from its state
    """
    request = repositories.get_request(session, request_id)
    if request is None:
        raise NotFoundError(f"Request {request_id} not found", details={"request_id": str(request_id)})
    try:
        request_action = RequestAction(action)
    except ValueError as e:
        raise ConstraintViolationError(str(e)) from e

    previous = request.state
    _move_request(request, request_action, utcnow())
    session.flush()
    logger.info(f"Request {request_id}: {previous} -> {request.state}")
    return request


# =============================================================================
# Stand conflicts
# =============================================================================


def detect_stand_conflicts(
    session: Session,
    event_id: UUID,
    today: Optional[date] = None,
) -> list[StandConflictCandidate]:
    """
    Contested stands of an event, with each claim scored.

    Read-only: candidates are returned for display or for
    open_stand_conflicts() to persist.
    """
    requests = repositories.pending_requests_for_event(session, event_id)
    companies = repositories.companies_by_id(session, (r.company_id for r in requests))
    histories = {cid: repositories.to_company_history(c) for cid, c in companies.items()}

    candidates = find_contested_stands(
        (repositories.to_request_record(r) for r in requests),
        histories,
        _today(today),
    )
    logger.info(f"Event {event_id}: {len(candidates)} contested stands")
    return candidates


def open_stand_conflicts(
    session: Session,
    event_id: UUID,
    actor_id: Optional[UUID] = None,
    today: Optional[date] = None,
) -> OpenStandConflictsResult:
    """
    Persist a stand conflict for every contested stand without an active one.

    Stands that already have an active conflict are skipped, including when
    the unique index reports a concurrent insert.
    """
    settings = get_settings()
    result = OpenStandConflictsResult()

    for candidate in detect_stand_conflicts(session, event_id, today):
        if repositories.find_active_stand_conflict(session, event_id, candidate.stand_id) is not None:
            result.skipped_stand_ids.append(candidate.stand_id)
            continue

        now = utcnow()
        conflict = StandConflict(
            event_id=event_id,
            stand_id=candidate.stand_id,
            kind=candidate.kind.value,
            companies=[claim.to_payload() for claim in candidate.companies],
            request_ids=[str(r) for r in candidate.request_ids],
            resolution_priority=candidate.resolution_priority.value,
            estimated_impact=candidate.estimated_impact.value,
            description=f"{len(candidate.companies)} companies requested the same stand",
            state=ConflictState.DETECTED.value,
            detection_method=DetectionMethod.AUTOMATIC.value,
            priority=settings.default_conflict_priority,
            is_urgent=False,
            compensated_companies=[],
            notification_log=[],
            change_history=[
                {
                    "action": "detect",
                    "actor_id": str(actor_id) if actor_id is not None else None,
                    "previous_state": None,
                    "new_state": ConflictState.DETECTED.value,
                    "timestamp": now.isoformat(),
                }
            ],
            created_by=actor_id,
        )
        try:
            with session.begin_nested():
                session.add(conflict)
        except IntegrityError:
            logger.info(f"Stand {candidate.stand_id} conflict inserted concurrently, skipping")
            result.skipped_stand_ids.append(candidate.stand_id)
            continue
        result.created.append(conflict)

    logger.info(
        f"Event {event_id}: opened {len(result.created)} stand conflicts, "
        f"skipped {len(result.skipped_stand_ids)}"
    )
    return result


def apply_stand_resolution(
    session: Session,
    conflict: StandConflict,
    winner_id: UUID,
    previous_state: str,
    reason: str,
    actor_id: Optional[UUID],
    now: datetime,
) -> ResolutionHistoryEntry:
    """
    Side effects of resolving a stand conflict in favour of winner_id.

    The winner's pending request is approved and granted the stand, the
    losers' pending requests are rejected (or cancelled once approved), and
    a reversible history entry records the grant.
    """
    requests = repositories.requests_by_id(session, (UUID(r) for r in conflict.request_ids))
    winner_request = None

    for request in requests:
        state = RequestState(request.state)
        if request.company_id == winner_id:
            winner_request = request
            if state in (RequestState.REQUESTED, RequestState.IN_REVIEW):
                _move_request(request, RequestAction.APPROVE, now)
        elif state in (RequestState.REQUESTED, RequestState.IN_REVIEW):
            _move_request(request, RequestAction.REJECT, now)
        elif state == RequestState.APPROVED:
            _move_request(request, RequestAction.CANCEL, now)

    stand_before = None
    state_before = previous_state
    state_after = ConflictState.RESUELTO.value
    if winner_request is not None:
        stand_before = winner_request.assigned_stand_id
        winner_request.assigned_stand_id = conflict.stand_id

    entry = ResolutionHistoryEntry(
        event_id=conflict.event_id,
        conflict_id=conflict.id,
        request_id=winner_request.id if winner_request is not None else None,
        company_id=winner_id,
        stand_before=stand_before,
        stand_after=conflict.stand_id,
        state_before=state_before,
        state_after=state_after,
        reason=reason,
        actor_id=actor_id,
        recorded_at=now,
        reversible=True,
    )
    session.add(entry)
    return entry


def revert_history_entry(
    session: Session,
    entry_id: UUID,
    actor_id: Optional[UUID],
    reason: str,
) -> ResolutionHistoryEntry:
    """
    Undo a recorded assignment change by appending its inverse.

    The request named by the entry gets its previous stand back. The new
    entry has before/after swapped, points at the reverted one and cannot
    itself be reverted.

    Raises:
        NotFoundError: If the entry does not exist
        InvalidTransitionError: If the entry is not reversible or was
            already reverted
        ConstraintViolationError: If no reason is given
    """
    if not reason or not reason.strip():
        raise ConstraintViolationError("Reverting a history entry requires a reason")

    entry = repositories.get_history_entry(session, entry_id)
    if entry is None:
        raise NotFoundError(f"History entry {entry_id} not found", details={"entry_id": str(entry_id)})
    if not entry.reversible:
        raise InvalidTransitionError("History entry is not reversible", details={"entry_id": str(entry_id)})
    if repositories.find_reversal(session, entry_id) is not None:
        raise InvalidTransitionError("History entry was already reverted", details={"entry_id": str(entry_id)})

    if entry.request_id is not None:
        request = repositories.get_request(session, entry.request_id)
        if request is not None:
            request.assigned_stand_id = entry.stand_before

    reversal = ResolutionHistoryEntry(
        event_id=entry.event_id,
        conflict_id=entry.conflict_id,
        request_id=entry.request_id,
        company_id=entry.company_id,
        stand_before=entry.stand_after,
        stand_after=entry.stand_before,
        state_before=entry.state_after,
        state_after=entry.state_before,
        reason=reason,
        actor_id=actor_id,
        recorded_at=utcnow(),
        reversible=False,
        reverts_entry_id=entry.id,
    )
    try:
        with session.begin_nested():
            session.add(reversal)
    except IntegrityError as e:
        raise InvalidTransitionError("History entry was already reverted") from e

    logger.info(f"History entry {entry_id} reverted by {actor_id}")
    return reversal


def stand_conflict_statistics(session: Session, event_id: UUID, now: Optional[datetime] = None) -> dict[str, Any]:
    """Totals, active, expired and resolved counts plus resolution rate and average hours."""
    now = now or utcnow()
    conflicts = repositories.stand_conflicts_for_event(session, event_id)
    resolved = [c for c in conflicts if c.state == ConflictState.RESUELTO.value]
    hours = [c.resolution_hours for c in resolved if c.resolution_hours is not None]
    total = len(conflicts)

    return {
        "event_id": str(event_id),
        "total": total,
        "active": sum(1 for c in conflicts if c.is_active),
        "expired": sum(1 for c in conflicts if is_expired(ConflictState(c.state), c.deadline, now)),
        "resolved": len(resolved),
        "resolution_rate": round(len(resolved) * 100 / total, 2) if total else 0.0,
        "average_resolution_hours": round(sum(hours) / len(hours), 2) if hours else None,
    }
