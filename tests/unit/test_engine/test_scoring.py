"""
Unit tests for company priority scoring.
"""

import uuid
from datetime import date, datetime, timezone

import pytest

from expo_conflicts.engine.records import CompanyHistory
from expo_conflicts.engine.scoring import compute_priority_score, years_since

TODAY = date(2026, 10, 19)


def history(participations=0, rating=None, first_year=None) -> CompanyHistory:
    first = datetime(first_year, 6, 1, tzinfo=timezone.utc) if first_year else None
    return CompanyHistory(
        company_id=uuid.uuid4(),
        participation_count=participations,
        average_rating=rating,
        first_participation_at=first,
    )


class TestComputePriorityScore:
    """Test the participation history formula."""

    def test_new_company_scores_zero(self):
        assert compute_priority_score(history(), TODAY) == 0.0

    def test_formula_components(self):
        # 3 * 5 + 4.2 * 10 + 4 years * 2
        assert compute_priority_score(history(3, 4.2, 2022), TODAY) == 65.0

    def test_participation_is_capped(self):
        assert compute_priority_score(history(participations=50), TODAY) == 25.0

    def test_seniority_is_capped(self):
        assert compute_priority_score(history(first_year=1990), TODAY) == 20.0

    def test_result_is_clamped_to_100(self):
        assert compute_priority_score(history(10, 9.0, 2000), TODAY) == 100.0

    def test_result_is_rounded_to_two_decimals(self):
        assert compute_priority_score(history(rating=3.333), TODAY) == 33.33

    @pytest.mark.parametrize("participations", [0, 1, 5, 40])
    @pytest.mark.parametrize("rating", [None, 0.0, 2.5, 5.0, 12.0])
    @pytest.mark.parametrize("first_year", [None, 2026, 2015, 1980])
    def test_score_is_bounded(self, participations, rating, first_year):
        score = compute_priority_score(history(participations, rating, first_year), TODAY)
        assert 0.0 <= score <= 100.0

    def test_negative_participation_counts_as_zero(self):
        assert compute_priority_score(history(participations=-3), TODAY) == 0.0


class TestYearsSince:
    def test_none(self):
        assert years_since(None, TODAY) == 0

    def test_future_first_participation(self):
        assert years_since(datetime(2030, 1, 1), TODAY) == 0
