"""Assignment request state machine."""

from enum import Enum

from expo_conflicts.engine.errors import InvalidTransitionError
from expo_conflicts.engine.records import RequestState


class RequestAction(str, Enum):
    REVIEW = "review"
    APPROVE = "approve"
    REJECT = "reject"
    ASSIGN = "assign"
    CANCEL = "cancel"


REQUEST_TRANSITIONS = {
    RequestAction.REVIEW: ({RequestState.REQUESTED}, RequestState.IN_REVIEW),
    RequestAction.APPROVE: ({RequestState.REQUESTED, RequestState.IN_REVIEW}, RequestState.APPROVED),
    RequestAction.REJECT: ({RequestState.REQUESTED, RequestState.IN_REVIEW}, RequestState.REJECTED),
    RequestAction.ASSIGN: ({RequestState.APPROVED}, RequestState.ASSIGNED),
    RequestAction.CANCEL: (
        {RequestState.REQUESTED, RequestState.IN_REVIEW, RequestState.APPROVED},
        RequestState.CANCELLED,
    ),
}


def next_request_state(current: RequestState, action: RequestAction) -> RequestState:
    """
    Target state for a request action.

    Raises:
        InvalidTransitionError: If the action is not allowed from current
    """
    action = RequestAction(action)
    allowed, target = REQUEST_TRANSITIONS[action]
    if current not in allowed:
        raise InvalidTransitionError(
            f"Cannot {action.value} a request in state '{current.value}'",
            details={"action": action.value, "state": current.value},
        )
    return target
