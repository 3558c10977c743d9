"""Priority scoring for companies competing for a stand."""

from datetime import date, datetime
from typing import Optional

from expo_conflicts.engine.records import CompanyHistory

MAX_SCORE = 100.0
PARTICIPATION_POINTS = 5
PARTICIPATION_CAP = 25
RATING_POINTS = 10
SENIORITY_POINTS = 2
SENIORITY_CAP = 20


def years_since(first: Optional[datetime], today: date) -> int:
    """Whole calendar years between the first participation and today."""
    if first is None:
        return 0
    return max(0, today.year - first.year)


def compute_priority_score(history: CompanyHistory, today: date) -> float:
    """
    Advisory score in [0, 100] derived from participation history.

    score = min(25, participations * 5)
          + average_rating * 10
          + min(20, years_since_first_participation * 2)
    """
    participations = max(0, history.participation_count or 0)
    rating = history.average_rating or 0.0

    score = (
        min(PARTICIPATION_CAP, participations * PARTICIPATION_POINTS)
        + rating * RATING_POINTS
        + min(SENIORITY_CAP, years_since(history.first_participation_at, today) * SENIORITY_POINTS)
    )
    return round(min(MAX_SCORE, max(0.0, score)), 2)
