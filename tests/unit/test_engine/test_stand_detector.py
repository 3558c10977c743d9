"""
Unit tests for stand conflict detection.
"""

import uuid
from datetime import date, datetime, timedelta, timezone

import pytest

from expo_conflicts.engine.records import (
    CompanyClaim,
    CompanyHistory,
    RequestRecord,
    RequestState,
    Severity,
    StandConflictKind,
)
from expo_conflicts.engine.stand_detector import (
    detect_stand_conflicts,
    estimated_impact,
    resolution_priority,
)

TODAY = date(2026, 10, 19)
EVENT = uuid.uuid4()
BASE = datetime(2026, 9, 1, 8, 0, tzinfo=timezone.utc)


def request(stand_id, company_id=None, state=RequestState.REQUESTED, minutes=0) -> RequestRecord:
    return RequestRecord(
        id=uuid.uuid4(),
        company_id=company_id or uuid.uuid4(),
        event_id=EVENT,
        stand_id=stand_id,
        state=state,
        requested_at=BASE + timedelta(minutes=minutes),
    )


def claims(*scores) -> list[CompanyClaim]:
    return [
        CompanyClaim(
            company_id=uuid.uuid4(),
            name=f"Company {i}",
            priority_score=score,
            request_id=uuid.uuid4(),
            requested_at=BASE,
        )
        for i, score in enumerate(scores)
    ]


class TestDetectStandConflicts:
    """Test grouping of pending requests by stand."""

    def test_three_companies_on_one_stand(self):
        stand = uuid.uuid4()
        requests = [request(stand, minutes=i) for i in range(3)]
        histories = {
            requests[0].company_id: CompanyHistory(requests[0].company_id, "Veteran", 4, 4.0, datetime(2020, 1, 1)),
            requests[1].company_id: CompanyHistory(requests[1].company_id, "Regular", 2, 3.0, datetime(2023, 1, 1)),
        }

        (candidate,) = detect_stand_conflicts(requests, histories, TODAY)

        assert candidate.stand_id == stand
        assert candidate.kind == StandConflictKind.MULTIPLE_REQUESTS
        assert len(candidate.companies) == 3
        assert all(0.0 <= c.priority_score <= 100.0 for c in candidate.companies)
        assert [c.name for c in candidate.companies][:2] == ["Veteran", "Regular"]
        assert candidate.resolution_priority == Severity.MEDIUM
        assert candidate.estimated_impact == Severity.MEDIUM

    def test_single_request_is_not_a_conflict(self):
        assert detect_stand_conflicts([request(uuid.uuid4()), request(uuid.uuid4())], {}, TODAY) == []

    def test_requests_without_stand_are_ignored(self):
        assert detect_stand_conflicts([request(None), request(None)], {}, TODAY) == []

    def test_closed_requests_do_not_compete(self):
        stand = uuid.uuid4()
        requests = [
            request(stand),
            request(stand, state=RequestState.REJECTED),
            request(stand, state=RequestState.CANCELLED),
        ]
        assert detect_stand_conflicts(requests, {}, TODAY) == []

    def test_ties_break_by_request_time(self):
        stand = uuid.uuid4()
        late = request(stand, minutes=30)
        early = request(stand, minutes=5)

        (candidate,) = detect_stand_conflicts([late, early], {}, TODAY)

        assert candidate.request_ids == [early.id, late.id]
        assert candidate.company_ids == [early.company_id, late.company_id]

    def test_candidates_ordered_by_stand(self):
        stands = [uuid.uuid4() for _ in range(3)]
        requests = [request(s) for s in stands for _ in range(2)]

        candidates = detect_stand_conflicts(requests, {}, TODAY)

        assert [str(c.stand_id) for c in candidates] == sorted(str(s) for s in stands)


class TestResolutionPriority:
    @pytest.mark.parametrize(
        "scores, expected",
        [
            ((10,), Severity.LOW),
            ((10, 20), Severity.MEDIUM),
            ((90, 20), Severity.MEDIUM),
            ((90, 20, 30), Severity.HIGH),
            ((10, 20, 30), Severity.MEDIUM),
            ((10, 20, 30, 40), Severity.HIGH),
            ((1, 2, 3, 4, 5, 6), Severity.CRITICAL),
        ],
    )
    def test_levels(self, scores, expected):
        assert resolution_priority(claims(*scores)) == expected

    def test_score_of_exactly_80_is_not_vip(self):
        assert resolution_priority(claims(80, 20, 30)) == Severity.MEDIUM


class TestEstimatedImpact:
    def test_follows_priority(self):
        group = claims(90, 20, 30)
        assert estimated_impact(group, resolution_priority(group)) == Severity.HIGH

    def test_large_group_is_critical(self):
        group = claims(*range(6))
        assert estimated_impact(group, Severity.LOW) == Severity.CRITICAL

    def test_pair_is_medium(self):
        assert estimated_impact(claims(10, 20), Severity.MEDIUM) == Severity.MEDIUM
