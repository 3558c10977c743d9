"""
Scheduling service: slot generation, auto-scheduling and slot suggestions.

Every call builds slots from the event's currently booked activities.
Nothing here writes to the database; placements are proposals for an
organizer to apply.
"""

import logging
from typing import Iterable, Mapping, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from expo_conflicts import repositories
from expo_conflicts.config import get_settings
from expo_conflicts.engine import scheduling
from expo_conflicts.engine.errors import NotFoundError
from expo_conflicts.engine.records import ScheduleResult, SlotOptions, SlotSet, SlotSuggestion

logger = logging.getLogger(__name__)


def default_slot_options(start_date, end_date, **overrides) -> SlotOptions:
    """SlotOptions filled from settings, with explicit overrides applied."""
    settings = get_settings()
    values = {
        "start_date": start_date,
        "end_date": end_date,
        "slot_minutes": settings.default_slot_minutes,
        "day_start_hour": settings.default_day_start_hour,
        "day_end_hour": settings.default_day_end_hour,
        "allowed_weekdays": list(settings.default_allowed_weekdays),
        "excluded_dates": [],
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return SlotOptions(**values)


def generate_slots(session: Session, event_id: UUID, options: SlotOptions) -> SlotSet:
    """
    Slots for an event, marked unavailable where an active activity is booked.

    Raises:
        ComputationError: If the date range or hour options are invalid
    """
    busy = repositories.busy_ranges_for_event(session, event_id)
    slot_set = scheduling.generate_slots(options, busy, get_settings().timezone)
    logger.info(
        f"Event {event_id}: {slot_set.total} slots, {slot_set.available_count} available",
        extra={"event_id": str(event_id), "slots": slot_set.total},
    )
    return slot_set


def auto_schedule(
    session: Session,
    event_id: UUID,
    options: SlotOptions,
    activity_ids: Optional[Iterable[UUID]] = None,
    priority_by_type: Optional[Mapping[str, int]] = None,
    margin_minutes: Optional[int] = None,
) -> ScheduleResult:
    """
    Propose times for an event's unscheduled activities.

    Args:
        session: Database session
        event_id: Event to schedule
        options: Slot generation options
        activity_ids: Restrict to these activities (all unscheduled if None)
        priority_by_type: Override of the activity type priority table
        margin_minutes: Gap kept between placed activities (settings default if None)
    """
    if margin_minutes is None:
        margin_minutes = get_settings().default_margin_minutes

    slot_set = generate_slots(session, event_id, options)
    activities = repositories.unscheduled_activities_for_event(session, event_id, activity_ids)
    result = scheduling.auto_schedule(
        (repositories.to_activity_record(a) for a in activities),
        slot_set.slots,
        priority_by_type=priority_by_type,
        margin_minutes=margin_minutes,
    )
    result.errors = slot_set.errors + result.errors
    return result


def suggest_slots(
    session: Session,
    event_id: UUID,
    activity_id: UUID,
    options: SlotOptions,
    limit: int = 5,
) -> list[SlotSuggestion]:
    """
    Best slots for one activity of the event.

    Raises:
        NotFoundError: If the activity does not exist or belongs to another event
        ComputationError: If the activity duration is not positive
    """
    activity = repositories.get_activity(session, activity_id)
    if activity is None or activity.event_id != event_id:
        raise NotFoundError(f"Activity {activity_id} not found", details={"activity_id": str(activity_id)})

    slot_set = generate_slots(session, event_id, options)
    return scheduling.suggest_slots(repositories.to_activity_record(activity), slot_set, limit)
