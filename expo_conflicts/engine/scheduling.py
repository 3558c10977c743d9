"""
Slot generation, greedy auto-scheduling and slot suggestions.

Slots are laid out in the event's local timezone and compared against
booked activities with the half-open overlap rule from timeline.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

from expo_conflicts.engine.errors import ComputationError, ItemError
from expo_conflicts.engine.records import (
    ActivityRecord,
    ScheduledActivity,
    ScheduleResult,
    Slot,
    SlotOptions,
    SlotSet,
    SlotSuggestion,
    UnscheduledActivity,
)
from expo_conflicts.engine.timeline import as_utc, duration_minutes, overlaps

logger = logging.getLogger(__name__)

DEFAULT_ACTIVITY_MINUTES = 60

DEFAULT_TYPE_PRIORITY = {
    "keynote": 10,
    "conference": 8,
    "panel": 7,
    "workshop": 6,
    "demo": 5,
    "networking": 4,
    "other": 3,
}
UNKNOWN_TYPE_PRIORITY = 1


def parse_date(value: Any) -> date:
    """
    Coerce a date, datetime or date string into a date.

    Raises:
        ComputationError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.parse(str(value)).date()
    except (ValueError, OverflowError) as e:
        raise ComputationError(f"Unparseable date: {value!r}", details={"value": str(value)}) from e


def _zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ComputationError(f"Unknown timezone: {tz_name}") from e


def _validate_options(options: SlotOptions) -> tuple[date, date]:
    start_date = parse_date(options.start_date)
    end_date = parse_date(options.end_date)

    problems = []
    if end_date < start_date:
        problems.append("end_date is before start_date")
    if options.slot_minutes <= 0:
        problems.append("slot_minutes must be positive")
    if not 0 <= options.day_start_hour < options.day_end_hour <= 24:
        problems.append("day hours must satisfy 0 <= day_start_hour < day_end_hour <= 24")
    if any(d < 1 or d > 7 for d in options.allowed_weekdays):
        problems.append("allowed_weekdays must be ISO weekday numbers 1-7")
    if problems:
        raise ComputationError("Invalid slot options: " + "; ".join(problems))
    return start_date, end_date


def _working_window(day: date, options: SlotOptions, zone: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC bounds of one day's working hours, given as local wall-clock hours."""
    start = datetime.combine(day, time(options.day_start_hour), tzinfo=zone)
    if options.day_end_hour == 24:
        end = datetime.combine(day + timedelta(days=1), time(0), tzinfo=zone)
    else:
        end = datetime.combine(day, time(options.day_end_hour), tzinfo=zone)
    return as_utc(start), as_utc(end)


def generate_slots(
    options: SlotOptions,
    busy: Iterable[tuple[datetime, datetime]],
    tz_name: str = "UTC",
) -> SlotSet:
    """
    Enumerate fixed-length slots across the date range.

    Dates outside allowed_weekdays or listed in excluded_dates are skipped.
    Slots are stepped in UTC and shown in the event timezone, so on a DST
    change day every slot still lasts exactly slot_minutes. A slot is
    unavailable when it overlaps any busy range. Unparseable excluded
    dates are reported as ItemErrors and otherwise ignored.

    Raises:
        ComputationError: If the range or hour options themselves are invalid
    """
    start_date, end_date = _validate_options(options)
    zone = _zone(tz_name)
    result = SlotSet()

    excluded = set()
    for raw in options.excluded_dates:
        try:
            excluded.add(parse_date(raw))
        except ComputationError as e:
            logger.warning(f"Ignoring excluded date {raw!r}: {e.message}")
            result.errors.append(ItemError.from_exception(raw, e))

    busy_ranges = [(as_utc(s), as_utc(e)) for s, e in busy]
    step = timedelta(minutes=options.slot_minutes)
    allowed = set(options.allowed_weekdays)

    day = start_date
    while day <= end_date:
        if day.isoweekday() in allowed and day not in excluded:
            cursor, day_end = _working_window(day, options, zone)
            while cursor + step <= day_end:
                slot_end = cursor + step
                available = not any(
                    overlaps(cursor, slot_end, b_start, b_end) for b_start, b_end in busy_ranges
                )
                result.slots.append(
                    Slot(start=cursor.astimezone(zone), end=slot_end.astimezone(zone), available=available)
                )
                cursor = slot_end
        day += timedelta(days=1)

    logger.debug(
        f"Generated {result.total} slots ({result.available_count} available)",
        extra={"slots": result.total, "available": result.available_count},
    )
    return result


def required_minutes(activity: ActivityRecord) -> int:
    """
    Minutes an activity needs; explicit duration, then its range, then 60.

    Raises:
        ComputationError: If the explicit duration is not positive
    """
    if activity.duration_minutes is not None:
        if activity.duration_minutes <= 0:
            raise ComputationError(
                f"Activity duration must be positive, got {activity.duration_minutes}",
                details={"duration_minutes": activity.duration_minutes},
            )
        return activity.duration_minutes
    if activity.start is not None and activity.end is not None:
        minutes = duration_minutes(activity.start, activity.end)
        if minutes > 0:
            return minutes
    return DEFAULT_ACTIVITY_MINUTES


def type_priority(activity_type: Optional[str], table: Mapping[str, int]) -> int:
    return table.get((activity_type or "").lower(), UNKNOWN_TYPE_PRIORITY)


def auto_schedule(
    activities: Iterable[ActivityRecord],
    slots: Iterable[Slot],
    priority_by_type: Optional[Mapping[str, int]] = None,
    margin_minutes: int = 0,
) -> ScheduleResult:
    """
    Greedy first-fit placement of activities into available slots.

    Activities are taken in descending type priority (stable for ties) and
    each one goes into the earliest unused available slot that is long
    enough and keeps margin_minutes clear of activities already placed in
    this run. Activities that find no slot are reported with a reason, and
    an activity with a malformed duration is also reported as an ItemError
    without stopping the run. Nothing is persisted.
    """
    table = {k.lower(): v for k, v in (priority_by_type or DEFAULT_TYPE_PRIORITY).items()}
    margin = timedelta(minutes=max(0, margin_minutes))
    free = sorted((s for s in slots if s.available), key=lambda s: as_utc(s.start))
    used: set[int] = set()
    placed: list[tuple[datetime, datetime]] = []
    result = ScheduleResult()

    ordered = sorted(activities, key=lambda a: -type_priority(a.activity_type, table))
    for activity in ordered:
        try:
            needed = required_minutes(activity)
        except ComputationError as e:
            logger.warning(f"Skipping activity {activity.id}: {e.message}")
            result.errors.append(ItemError.from_exception(activity.id, e))
            result.unscheduled.append(
                UnscheduledActivity(
                    activity_id=activity.id,
                    activity_type=activity.activity_type,
                    reason=e.message,
                )
            )
            continue

        long_enough = [i for i, s in enumerate(free) if i not in used and s.duration_minutes >= needed]

        chosen = None
        for index in long_enough:
            slot = free[index]
            start = as_utc(slot.start)
            end = start + timedelta(minutes=needed)
            if any(start < p_end + margin and p_start - margin < end for p_start, p_end in placed):
                continue
            chosen = index
            break

        if chosen is None:
            if not long_enough:
                reason = f"No available slot of at least {needed} minutes"
            else:
                reason = f"Every slot of at least {needed} minutes falls within the {margin_minutes} minute margin"
            result.unscheduled.append(
                UnscheduledActivity(
                    activity_id=activity.id,
                    activity_type=activity.activity_type,
                    reason=reason,
                )
            )
            continue

        slot = free[chosen]
        used.add(chosen)
        start = slot.start
        end = (as_utc(start) + timedelta(minutes=needed)).astimezone(start.tzinfo)
        placed.append((as_utc(start), as_utc(end)))
        result.scheduled.append(
            ScheduledActivity(
                activity_id=activity.id,
                activity_type=activity.activity_type,
                start=start,
                end=end,
            )
        )

    result.slots_used = len(used)
    result.slots_remaining = len(free) - len(used)
    logger.info(
        f"Auto-schedule placed {len(result.scheduled)} activities, "
        f"{len(result.unscheduled)} left unscheduled"
    )
    return result


def score_slot(slot: Slot, activity_type: Optional[str]) -> int:
    """
    Preference score for starting an activity in a slot.

    Mornings (09-11h) and early afternoons (14-16h) are preferred; keynotes
    favour the 09h slot and networking favours late afternoon.
    """
    hour = slot.start.hour
    kind = (activity_type or "").lower()
    score = 100
    if 9 <= hour < 11:
        score += 20
    if 14 <= hour < 16:
        score += 10
    if kind == "keynote" and 9 <= hour < 10:
        score += 30
    if kind == "networking" and hour >= 17:
        score += 25
    return score


def suggest_slots(activity: ActivityRecord, slot_set: SlotSet, limit: int = 5) -> list[SlotSuggestion]:
    """
    Best available slots for one activity, highest score first, then earliest.

    Raises:
        ComputationError: If the activity duration is not positive
    """
    needed = required_minutes(activity)
    suggestions = [
        SlotSuggestion(start=slot.start, end=slot.end, score=score_slot(slot, activity.activity_type))
        for slot in slot_set.available
        if slot.duration_minutes >= needed
    ]
    suggestions.sort(key=lambda s: (-s.score, as_utc(s.start)))
    return suggestions[: max(0, limit)]
