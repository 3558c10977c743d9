"""
Unit tests for API Pydantic models.

Tests request validation and response serialization.
"""

import uuid
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from expo_conflicts.api.models import (
    CompanyClaimResponse,
    ErrorResponse,
    ItemErrorResponse,
    ReportConflictRequest,
    RevertHistoryRequest,
    SlotOptionsRequest,
    SlotResponse,
    SuggestSlotsRequest,
    TransitionRequest,
)
from expo_conflicts.engine.errors import ComputationError, ItemError
from expo_conflicts.engine.records import CompanyClaim, Slot


class TestReportConflictRequest:
    """Test ReportConflictRequest validation."""

    def test_valid_request(self):
        request = ReportConflictRequest(
            activity_a_id=uuid.uuid4(),
            activity_b_id=uuid.uuid4(),
            kind="same_speaker",
            description="Speaker booked twice",
        )
        assert request.detection_method == "manual"
        assert request.severity is None

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            ReportConflictRequest(
                activity_a_id=uuid.uuid4(),
                activity_b_id=uuid.uuid4(),
                kind="double_booking",
                description="Speaker booked twice",
            )

    def test_description_too_short(self):
        with pytest.raises(ValidationError):
            ReportConflictRequest(
                activity_a_id=uuid.uuid4(), activity_b_id=uuid.uuid4(), kind="same_track", description="x"
            )


class TestTransitionRequest:
    def test_only_known_actions(self):
        assert TransitionRequest(action="escalate", reason="late").action == "escalate"
        with pytest.raises(ValidationError):
            TransitionRequest(action="archive")


class TestSlotOptionsRequest:
    def test_weekdays_validated(self):
        with pytest.raises(ValidationError):
            SlotOptionsRequest(start_date="2026-03-02", end_date="2026-03-06", allowed_weekdays=[0])

    def test_slot_minutes_lower_bound(self):
        with pytest.raises(ValidationError):
            SlotOptionsRequest(start_date="2026-03-02", end_date="2026-03-06", slot_minutes=1)

    def test_suggest_limit_bounds(self):
        assert SuggestSlotsRequest(start_date="2026-03-02", end_date="2026-03-02").limit == 5
        with pytest.raises(ValidationError):
            SuggestSlotsRequest(start_date="2026-03-02", end_date="2026-03-02", limit=0)


class TestRevertHistoryRequest:
    def test_reason_required(self):
        with pytest.raises(ValidationError):
            RevertHistoryRequest(reason="")


class TestResponses:
    """Test responses built from engine records."""

    def test_item_error_from_exception(self):
        error = ItemError.from_exception(uuid.uuid4(), ComputationError("Activity ends before it starts"))
        response = ItemErrorResponse.model_validate(error)
        assert response.error_type == "computation_error"
        assert response.details == {}

    def test_slot_response(self):
        start = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        slot = Slot(start=start, end=start.replace(hour=10), available=False)

        response = SlotResponse.model_validate(slot)

        assert response.duration_minutes == 60
        assert response.available is False

    def test_company_claim(self):
        claim = CompanyClaim(
            company_id=uuid.uuid4(),
            name="Acme",
            priority_score=72.5,
            request_id=uuid.uuid4(),
            requested_at=datetime(2026, 9, 1, tzinfo=timezone.utc),
        )
        assert CompanyClaimResponse.model_validate(claim).priority_score == 72.5

    def test_error_envelope_defaults(self):
        envelope = ErrorResponse(error_type="not_found", message="Conflict not found")
        assert envelope.model_dump() == {
            "error_type": "not_found",
            "message": "Conflict not found",
            "retryable": False,
            "details": {},
        }
