"""
Pairwise activity conflict detection.

Every unordered pair of activities is evaluated independently for each
conflict kind. A pair can yield several findings at once (time, location
and speaker together, for instance); each becomes its own record.

Detection is a pure function of its input. Deduplication against stored
conflicts happens in the service layer.
"""

import logging
from itertools import combinations
from typing import Iterable, Optional

from expo_conflicts.engine.errors import ComputationError, ItemError
from expo_conflicts.engine.records import (
    ActivityRecord,
    ConflictFinding,
    ConflictKind,
    DetectionReport,
    LocationDetails,
    ResourceDetails,
    Severity,
    SpeakerDetails,
    TimeOverlapDetails,
    TrackDetails,
)
from expo_conflicts.engine.timeline import as_utc, overlap_duration

logger = logging.getLogger(__name__)

# (percent threshold, severity), checked from the top
OVERLAP_SEVERITY_THRESHOLDS = (
    (80, Severity.CRITICAL),
    (50, Severity.HIGH),
    (20, Severity.MEDIUM),
)


def validate_activity(activity: ActivityRecord) -> None:
    """
    Check an activity has a usable time range.

    Raises:
        ComputationError: If start or end is missing or end <= start
    """
    if activity.start is None or activity.end is None:
        raise ComputationError(
            "Activity has no time range",
            details={"activity_id": str(activity.id)},
        )
    if as_utc(activity.end) <= as_utc(activity.start):
        raise ComputationError(
            "Activity ends before it starts",
            details={
                "activity_id": str(activity.id),
                "start": activity.start.isoformat(),
                "end": activity.end.isoformat(),
            },
        )


def overlap_severity(overlap, longest) -> Severity:
    """
    Severity of a time overlap relative to the longer activity.

    Both arguments are timedeltas; the comparison stays in integer
    duration arithmetic.
    """
    for percent, severity in OVERLAP_SEVERITY_THRESHOLDS:
        if overlap * 100 >= longest * percent:
            return severity
    return Severity.LOW


def canonical_pair(a: ActivityRecord, b: ActivityRecord) -> tuple[ActivityRecord, ActivityRecord]:
    """Order a pair so the lexicographically smaller id comes first."""
    if str(a.id) <= str(b.id):
        return a, b
    return b, a


def _same_location(a: ActivityRecord, b: ActivityRecord) -> Optional[str]:
    if not (a.modality.is_physical and b.modality.is_physical):
        return None
    if not a.location or not b.location:
        return None
    if a.location.strip().casefold() != b.location.strip().casefold():
        return None
    return a.location.strip()


def detect_pair_conflicts(a: ActivityRecord, b: ActivityRecord) -> list[ConflictFinding]:
    """
    Evaluate one pair of validated activities.

    Every kind other than time_overlap also requires the time ranges to
    overlap, so nothing is reported for disjoint or touching activities.
    """
    a, b = canonical_pair(a, b)
    overlap = overlap_duration(a.start, a.end, b.start, b.end)
    if not overlap:
        return []

    duration_a = as_utc(a.end) - as_utc(a.start)
    duration_b = as_utc(b.end) - as_utc(b.start)
    longest = max(duration_a, duration_b)
    minutes = int(overlap.total_seconds() // 60)
    percent = int(overlap * 100 // longest)

    findings = []

    def add(kind, severity, description, details, affected):
        findings.append(
            ConflictFinding(
                event_id=a.event_id,
                activity_a_id=a.id,
                activity_b_id=b.id,
                kind=kind,
                severity=severity,
                description=description,
                details=details,
                affected_participants=affected,
            )
        )

    combined = a.registered_participants + b.registered_participants

    add(
        ConflictKind.TIME_OVERLAP,
        overlap_severity(overlap, longest),
        f"'{a.title}' and '{b.title}' overlap by {minutes} minutes ({percent}%)",
        TimeOverlapDetails(
            overlap_minutes=minutes,
            overlap_percent=percent,
            a_start=a.start,
            a_end=a.end,
            b_start=b.start,
            b_end=b.end,
        ),
        combined,
    )

    location = _same_location(a, b)
    if location:
        add(
            ConflictKind.SAME_LOCATION,
            Severity.HIGH,
            f"'{a.title}' and '{b.title}' are both held in {location} at the same time",
            LocationDetails(location=location, modality_a=a.modality, modality_b=b.modality),
            max(a.registered_participants, b.registered_participants),
        )

    speakers_b = {s.speaker_id for s in b.speakers}
    shared_speakers = []
    for speaker in a.speakers:
        if speaker.speaker_id in speakers_b and speaker.speaker_id not in shared_speakers:
            shared_speakers.append(speaker.speaker_id)
    if shared_speakers:
        shared = set(shared_speakers)
        add(
            ConflictKind.SAME_SPEAKER,
            Severity.HIGH,
            f"{len(shared_speakers)} speaker(s) booked in '{a.title}' and '{b.title}' at once",
            SpeakerDetails(
                speaker_ids=tuple(shared_speakers),
                roles_a=tuple(s.role for s in a.speakers if s.speaker_id in shared),
                roles_b=tuple(s.role for s in b.speakers if s.speaker_id in shared),
            ),
            combined,
        )

    resources_b = {r.resource_id: r for r in b.resources}
    shared_resources = []
    critical_resources = []
    for resource in a.resources:
        other = resources_b.get(resource.resource_id)
        if other is None or resource.resource_id in shared_resources:
            continue
        shared_resources.append(resource.resource_id)
        # Unset flags count as non-critical
        if resource.is_critical is True or other.is_critical is True:
            critical_resources.append(resource.resource_id)
    if shared_resources:
        add(
            ConflictKind.SAME_RESOURCE,
            Severity.CRITICAL if critical_resources else Severity.MEDIUM,
            f"{len(shared_resources)} resource(s) needed by '{a.title}' and '{b.title}' at once",
            ResourceDetails(
                resource_ids=tuple(shared_resources),
                critical_resource_ids=tuple(critical_resources),
            ),
            combined,
        )

    if a.track_id is not None and a.track_id == b.track_id:
        add(
            ConflictKind.SAME_TRACK,
            Severity.MEDIUM,
            f"'{a.title}' and '{b.title}' run in parallel on the same track",
            TrackDetails(track_id=a.track_id),
            min(a.registered_participants, b.registered_participants),
        )

    return findings


def detect_conflicts(activities: Iterable[ActivityRecord]) -> DetectionReport:
    """
    Scan every unordered pair of activities.

    Activities with a missing or inverted range are reported as ItemErrors
    and left out of pairing; the rest of the scan proceeds.
    """
    report = DetectionReport()
    valid = []
    for activity in activities:
        try:
            validate_activity(activity)
        except ComputationError as e:
            logger.warning(f"Skipping activity {activity.id}: {e.message}")
            report.errors.append(ItemError.from_exception(activity.id, e))
            continue
        valid.append(activity)

    for a, b in combinations(valid, 2):
        report.findings.extend(detect_pair_conflicts(a, b))

    logger.debug(
        f"Scanned {len(valid)} activities, {len(report.findings)} findings",
        extra={"activities": len(valid), "findings": len(report.findings)},
    )
    return report
