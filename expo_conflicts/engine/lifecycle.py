"""
Conflict workflow state machine.

Shared by schedule conflicts and stand conflicts. apply_transition() is a
pure function: it checks every guard first and, only if all pass, returns
the field changes, notification entries and change-history entry that the
caller persists. A rejected transition leaves nothing to write.

States:
    detected -> en_revision            assign (reviewer required)
    escalado -> en_revision            assign (re-assignment after escalation)
    en_revision -> en_resolucion       start_resolution
    en_revision|en_resolucion -> resuelto   resolve
    en_revision -> escalado            escalate
    any non-terminal -> ignorado       ignore
    any non-terminal -> cancelado      cancel
    en_revision|en_resolucion          approve (sign-off before resolve, state kept)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from expo_conflicts.engine.errors import ConstraintViolationError, InvalidTransitionError
from expo_conflicts.engine.records import ConflictState, ResolutionAction
from expo_conflicts.engine.timeline import as_utc

logger = logging.getLogger(__name__)


class TransitionAction(str, Enum):
    ASSIGN = "assign"
    START_RESOLUTION = "start_resolution"
    RESOLVE = "resolve"
    ESCALATE = "escalate"
    IGNORE = "ignore"
    CANCEL = "cancel"
    APPROVE = "approve"


_NON_TERMINAL = frozenset(
    {
        ConflictState.DETECTED,
        ConflictState.EN_REVISION,
        ConflictState.EN_RESOLUCION,
        ConflictState.ESCALADO,
    }
)

# action -> (allowed source states, target state or None when state is kept)
TRANSITIONS: dict[TransitionAction, tuple[frozenset, Optional[ConflictState]]] = {
    TransitionAction.ASSIGN: (
        frozenset({ConflictState.DETECTED, ConflictState.ESCALADO}),
        ConflictState.EN_REVISION,
    ),
    TransitionAction.START_RESOLUTION: (
        frozenset({ConflictState.EN_REVISION}),
        ConflictState.EN_RESOLUCION,
    ),
    TransitionAction.RESOLVE: (
        frozenset({ConflictState.EN_REVISION, ConflictState.EN_RESOLUCION}),
        ConflictState.RESUELTO,
    ),
    TransitionAction.ESCALATE: (
        frozenset({ConflictState.EN_REVISION}),
        ConflictState.ESCALADO,
    ),
    TransitionAction.IGNORE: (_NON_TERMINAL, ConflictState.IGNORADO),
    TransitionAction.CANCEL: (_NON_TERMINAL, ConflictState.CANCELADO),
    TransitionAction.APPROVE: (
        frozenset({ConflictState.EN_REVISION, ConflictState.EN_RESOLUCION}),
        None,
    ),
}


@dataclass
class WorkflowView:
    """The workflow-relevant slice of a stored conflict."""

    state: ConflictState
    priority: int
    assigned_to: Optional[UUID] = None
    review_started_at: Optional[datetime] = None
    deadline: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    # Set only for stand conflicts
    company_ids: Optional[list[UUID]] = None


@dataclass
class TransitionPayload:
    """Inputs for a transition; which fields are required depends on the action."""

    actor_id: Optional[UUID] = None
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


@dataclass
class TransitionOutcome:
    action: TransitionAction
    previous_state: ConflictState
    new_state: ConflictState
    changes: dict[str, Any] = field(default_factory=dict)
    notifications: list[dict[str, Any]] = field(default_factory=list)
    history: dict[str, Any] = field(default_factory=dict)


def is_expired(state: ConflictState, deadline: Optional[datetime], now: datetime) -> bool:
    """A non-terminal conflict whose deadline has passed. Never transitions by itself."""
    if deadline is None or state.is_terminal:
        return False
    return as_utc(now) > as_utc(deadline)


def _require(action: TransitionAction, payload: TransitionPayload, *names: str) -> None:
    missing = []
    for name in names:
        value = getattr(payload, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    if missing:
        raise ConstraintViolationError(
            f"Action '{action.value}' requires: {', '.join(missing)}",
            details={"missing": missing},
        )


def _notification(kind: str, recipient: Optional[UUID], channel: str, now: datetime) -> dict[str, Any]:
    return {
        "type": kind,
        "recipient": str(recipient) if recipient is not None else None,
        "channel": channel,
        "timestamp": as_utc(now).isoformat(),
    }


def elapsed_hours(start: Optional[datetime], end: datetime) -> Optional[float]:
    if start is None:
        return None
    return round((as_utc(end) - as_utc(start)).total_seconds() / 3600, 2)


def apply_transition(
    view: WorkflowView,
    action: TransitionAction,
    payload: TransitionPayload,
    now: datetime,
    escalation_step: int = 2,
    channel: str = "email",
) -> TransitionOutcome:
    """
    Validate and compute a workflow transition.

    Raises:
        InvalidTransitionError: If the current state does not allow the action
        ConstraintViolationError: If a required payload field is missing or
            the winning company is not among the conflicting companies
    """
    action = TransitionAction(action)
    allowed, target = TRANSITIONS[action]
    if view.state not in allowed:
        raise InvalidTransitionError(
            f"Cannot {action.value} a conflict in state '{view.state.value}'",
            details={"action": action.value, "state": view.state.value},
        )

    changes: dict[str, Any] = {}
    recipient = view.assigned_to
    notification_type = f"conflict_{action.value}"

    if action == TransitionAction.ASSIGN:
        _require(action, payload, "reviewer_id")
        changes.update(assigned_to=payload.reviewer_id, review_started_at=now)
        if payload.deadline is not None:
            changes["deadline"] = payload.deadline
        recipient = payload.reviewer_id

    elif action == TransitionAction.START_RESOLUTION:
        pass

    elif action == TransitionAction.RESOLVE:
        _require(action, payload, "resolution_action", "description", "resolver_id")
        if view.company_ids is None:
            valid_actions = {a.value for a in ResolutionAction}
            if payload.resolution_action not in valid_actions:
                raise ConstraintViolationError(
                    f"Unknown resolution action '{payload.resolution_action}'",
                    details={"allowed": sorted(valid_actions)},
                )
        else:
            _require(action, payload, "assigned_company")
            if payload.assigned_company not in view.company_ids:
                raise ConstraintViolationError(
                    "Assigned company is not among the conflicting companies",
                    details={"assigned_company": str(payload.assigned_company)},
                )
            changes["assigned_company"] = payload.assigned_company
            changes["compensated_companies"] = [
                str(c) for c in view.company_ids if c != payload.assigned_company
            ]
        changes.update(
            resolution_action=payload.resolution_action,
            resolution_description=payload.description,
            resolved_by=payload.resolver_id,
            resolved_at=now,
            resolution_hours=elapsed_hours(view.review_started_at, now),
        )

    elif action == TransitionAction.ESCALATE:
        _require(action, payload, "target", "reason")
        changes.update(
            escalated_to=payload.target,
            escalation_reason=payload.reason,
            escalated_at=now,
            is_urgent=True,
            priority=max(1, view.priority - escalation_step),
        )
        recipient = payload.target

    elif action == TransitionAction.IGNORE:
        _require(action, payload, "justification")
        changes.update(ignore_justification=payload.justification, resolved_at=now)

    elif action == TransitionAction.CANCEL:
        _require(action, payload, "reason")
        changes.update(cancel_reason=payload.reason, resolved_at=now)

    elif action == TransitionAction.APPROVE:
        _require(action, payload, "approver_id")
        if view.approved_at is not None:
            raise InvalidTransitionError("Conflict is already approved")
        changes.update(approved_by=payload.approver_id, approved_at=now)
        recipient = view.assigned_to

    new_state = target or view.state
    if new_state != view.state:
        changes["state"] = new_state.value

    actor = payload.actor_id or payload.resolver_id or payload.reviewer_id or payload.approver_id
    history = {
        "action": action.value,
        "actor_id": str(actor) if actor is not None else None,
        "previous_state": view.state.value,
        "new_state": new_state.value,
        "timestamp": as_utc(now).isoformat(),
    }

    logger.debug(f"Transition {action.value}: {view.state.value} -> {new_state.value}")
    return TransitionOutcome(
        action=action,
        previous_state=view.state,
        new_state=new_state,
        changes=changes,
        notifications=[_notification(notification_type, recipient, channel, now)],
        history=history,
    )
