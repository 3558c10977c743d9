"""
Time-range comparison primitives shared by every detector.

Intervals are half-open: [start, end). Touching endpoints do not overlap.
All arithmetic is done on datetime/timedelta values, never floats.
"""

from datetime import datetime, timedelta, timezone

ONE_MINUTE = timedelta(minutes=1)


def as_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to an aware UTC value.

    Naive values are assumed to already be UTC (SQLite drops tzinfo on read).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Return True iff [a_start, a_end) and [b_start, b_end) intersect."""
    a_start, a_end, b_start, b_end = (as_utc(v) for v in (a_start, a_end, b_start, b_end))
    return a_start < b_end and b_start < a_end


def overlap_duration(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> timedelta:
    """Length of the intersection of two intervals (zero when disjoint)."""
    a_start, a_end, b_start, b_end = (as_utc(v) for v in (a_start, a_end, b_start, b_end))
    shared = min(a_end, b_end) - max(a_start, b_start)
    return max(timedelta(0), shared)


def overlap_minutes(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> int:
    """Whole minutes of overlap between two intervals."""
    return overlap_duration(a_start, a_end, b_start, b_end) // ONE_MINUTE


def duration_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between start and end."""
    return (as_utc(end) - as_utc(start)) // ONE_MINUTE
