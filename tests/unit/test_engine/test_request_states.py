"""
Unit tests for the assignment request state machine.
"""

import pytest

from expo_conflicts.engine.errors import InvalidTransitionError
from expo_conflicts.engine.records import RequestState
from expo_conflicts.engine.requests import RequestAction, next_request_state


@pytest.mark.parametrize(
    "current, action, expected",
    [
        (RequestState.REQUESTED, RequestAction.REVIEW, RequestState.IN_REVIEW),
        (RequestState.IN_REVIEW, RequestAction.APPROVE, RequestState.APPROVED),
        (RequestState.REQUESTED, RequestAction.REJECT, RequestState.REJECTED),
        (RequestState.APPROVED, RequestAction.ASSIGN, RequestState.ASSIGNED),
        (RequestState.APPROVED, RequestAction.CANCEL, RequestState.CANCELLED),
    ],
)
def test_allowed_transitions(current, action, expected):
    assert next_request_state(current, action) == expected


@pytest.mark.parametrize(
    "current, action",
    [
        (RequestState.ASSIGNED, RequestAction.CANCEL),
        (RequestState.REJECTED, RequestAction.APPROVE),
        (RequestState.REQUESTED, RequestAction.ASSIGN),
        (RequestState.CANCELLED, RequestAction.REVIEW),
    ],
)
def test_forbidden_transitions(current, action):
    with pytest.raises(InvalidTransitionError):
        next_request_state(current, action)


def test_action_accepts_plain_strings():
    assert next_request_state(RequestState.REQUESTED, "approve") == RequestState.APPROVED
