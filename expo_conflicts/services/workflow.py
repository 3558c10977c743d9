"""
Conflict workflow service.

Applies state-machine transitions to stored schedule and stand conflicts.
Guards run before anything is written. The write itself is a
compare-and-swap on the row's version column: if another session changed
the conflict since it was read, the UPDATE matches no row, the savepoint is
rolled back and the caller gets InvalidTransitionError.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from expo_conflicts import repositories
from expo_conflicts.config import get_settings
from expo_conflicts.engine.errors import (
    ConstraintViolationError,
    InvalidTransitionError,
    ItemError,
    NotFoundError,
)
from expo_conflicts.engine.lifecycle import (
    TransitionAction,
    TransitionPayload,
    WorkflowView,
    apply_transition,
    is_expired,
)
from expo_conflicts.engine.records import ConflictState
from expo_conflicts.models.base import utcnow
from expo_conflicts.models.conflicts import ScheduleConflict, StandConflict
from expo_conflicts.services.stand_conflicts import apply_stand_resolution

logger = logging.getLogger(__name__)

Conflict = Union[ScheduleConflict, StandConflict]


@dataclass
class EscalationSweepResult:
    escalated: list[UUID] = field(default_factory=list)
    skipped: list[UUID] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)


def _view(conflict: Conflict) -> WorkflowView:
    return WorkflowView(
        state=ConflictState(conflict.state),
        priority=conflict.priority,
        assigned_to=conflict.assigned_to,
        review_started_at=conflict.review_started_at,
        deadline=conflict.deadline,
        approved_at=conflict.approved_at,
        company_ids=conflict.company_ids if isinstance(conflict, StandConflict) else None,
    )


def get_conflict_or_raise(session: Session, conflict_id: UUID) -> Conflict:
    conflict = repositories.get_conflict(session, conflict_id)
    if conflict is None:
        raise NotFoundError(f"Conflict {conflict_id} not found", details={"conflict_id": str(conflict_id)})
    return conflict


def transition_conflict(
    session: Session,
    conflict_id: UUID,
    action: Union[str, TransitionAction],
    payload: TransitionPayload,
    now: Optional[datetime] = None,
) -> Conflict:
    """
    Apply a workflow action to a schedule or stand conflict.

    Args:
        session: Database session
        conflict_id: Conflict to transition (either type)
        action: assign, start_resolution, resolve, escalate, ignore, cancel or approve
        payload: Action inputs and the acting user
        now: Transition time (defaults to the current UTC time)

    Returns:
        The updated conflict

    Raises:
        NotFoundError: If the conflict does not exist
        InvalidTransitionError: If the state forbids the action or the
            conflict was changed concurrently
        ConstraintViolationError: If a required payload field is missing,
            the action is unknown or the winning company is not a contender
    """
    conflict = get_conflict_or_raise(session, conflict_id)
    try:
        action = TransitionAction(action)
    except ValueError as e:
        raise ConstraintViolationError(f"Unknown action '{action}'") from e

    settings = get_settings()
    now = now or utcnow()
    outcome = apply_transition(
        _view(conflict),
        action,
        payload,
        now,
        escalation_step=settings.escalation_priority_step,
        channel=settings.notification_channel,
    )

    try:
        with session.begin_nested():
            for name, value in outcome.changes.items():
                setattr(conflict, name, value)
            conflict.notification_log = list(conflict.notification_log or []) + outcome.notifications
            conflict.change_history = list(conflict.change_history or []) + [outcome.history]
            conflict.updated_by = payload.actor_id

            if isinstance(conflict, StandConflict) and action == TransitionAction.RESOLVE:
                apply_stand_resolution(
                    session,
                    conflict,
                    winner_id=payload.assigned_company,
                    previous_state=outcome.previous_state.value,
                    reason=payload.description,
                    actor_id=payload.actor_id or payload.resolver_id,
                    now=now,
                )
    except StaleDataError as e:
        logger.warning(
            f"Conflict {conflict_id} changed concurrently, {action.value} rejected",
            extra={"conflict_id": str(conflict_id), "action": action.value},
        )
        raise InvalidTransitionError(
            "Conflict was modified by another reviewer; re-fetch its current state",
            details={"conflict_id": str(conflict_id)},
        ) from e

    logger.info(
        f"Conflict {conflict_id}: {outcome.previous_state.value} -> {outcome.new_state.value} ({action.value})",
        extra={"conflict_id": str(conflict_id), "action": action.value},
    )
    return conflict


def find_expired_conflicts(
    session: Session,
    event_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> list[Conflict]:
    """Non-terminal conflicts whose deadline has passed. Nothing is changed."""
    now = now or utcnow()
    return [
        conflict
        for conflict in repositories.conflicts_with_deadline(session, event_id)
        if is_expired(ConflictState(conflict.state), conflict.deadline, now)
    ]


def escalate_expired_conflicts(
    session: Session,
    target_id: UUID,
    actor_id: Optional[UUID] = None,
    event_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> EscalationSweepResult:
    """
    Force escalation of expired conflicts that are under review.

    Expired conflicts in other states are listed as skipped. A conflict
    that cannot be escalated (for example because it changed concurrently)
    is reported as an ItemError and the sweep continues.
    """
    now = now or utcnow()
    result = EscalationSweepResult()

    for conflict in find_expired_conflicts(session, event_id, now):
        if conflict.state != ConflictState.EN_REVISION.value:
            result.skipped.append(conflict.id)
            continue

        payload = TransitionPayload(
            actor_id=actor_id,
            target=target_id,
            reason=f"Review deadline {conflict.deadline.isoformat()} passed",
        )
        try:
            transition_conflict(session, conflict.id, TransitionAction.ESCALATE, payload, now)
        except (InvalidTransitionError, ConstraintViolationError) as e:
            result.errors.append(ItemError.from_exception(conflict.id, e))
            continue
        result.escalated.append(conflict.id)

    logger.info(
        f"Expiry sweep escalated {len(result.escalated)} conflicts, "
        f"skipped {len(result.skipped)}, {len(result.errors)} errors"
    )
    return result
