"""
Stand assignment conflict detection.

Groups pending requests by the stand they ask for. Any stand wanted by more
than one company becomes a candidate; nothing is persisted here.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Iterable, Mapping
from uuid import UUID

from expo_conflicts.engine.records import (
    PENDING_REQUEST_STATES,
    CompanyClaim,
    CompanyHistory,
    RequestRecord,
    Severity,
    StandConflictCandidate,
)
from expo_conflicts.engine.scoring import compute_priority_score
from expo_conflicts.engine.timeline import as_utc

logger = logging.getLogger(__name__)

# Companies above this score make a stand dispute a VIP one
HIGH_SCORE_THRESHOLD = 80


def resolution_priority(claims: list[CompanyClaim]) -> Severity:
    count = len(claims)
    has_vip = any(claim.priority_score > HIGH_SCORE_THRESHOLD for claim in claims)

    if count > 5:
        return Severity.CRITICAL
    if (has_vip and count > 2) or count > 3:
        return Severity.HIGH
    if count > 1:
        return Severity.MEDIUM
    return Severity.LOW


def estimated_impact(claims: list[CompanyClaim], priority: Severity) -> Severity:
    count = len(claims)
    if priority == Severity.CRITICAL or count > 5:
        return Severity.CRITICAL
    if priority == Severity.HIGH or count > 3:
        return Severity.HIGH
    if count > 1:
        return Severity.MEDIUM
    return Severity.LOW


def detect_stand_conflicts(
    requests: Iterable[RequestRecord],
    histories: Mapping[UUID, CompanyHistory],
    today: date,
) -> list[StandConflictCandidate]:
    """
    Build one candidate per stand claimed by more than one pending request.

    Requests without a stand (automatic mode) are ignored. Claims are ordered
    by score, highest first, then by request time. Candidates come back
    ordered by stand id.
    """
    by_stand: dict[UUID, list[RequestRecord]] = defaultdict(list)
    for request in requests:
        if request.stand_id is None or request.state not in PENDING_REQUEST_STATES:
            continue
        by_stand[request.stand_id].append(request)

    candidates = []
    for stand_id, group in sorted(by_stand.items(), key=lambda item: str(item[0])):
        if len(group) < 2:
            continue

        claims = []
        for request in group:
            history = histories.get(request.company_id) or CompanyHistory(company_id=request.company_id)
            claims.append(
                CompanyClaim(
                    company_id=request.company_id,
                    name=history.name,
                    priority_score=compute_priority_score(history, today),
                    request_id=request.id,
                    requested_at=request.requested_at,
                )
            )
        claims.sort(key=lambda c: (-c.priority_score, as_utc(c.requested_at)))

        priority = resolution_priority(claims)
        candidates.append(
            StandConflictCandidate(
                event_id=group[0].event_id,
                stand_id=stand_id,
                companies=claims,
                resolution_priority=priority,
                estimated_impact=estimated_impact(claims, priority),
            )
        )

    logger.debug(f"Found {len(candidates)} contested stands")
    return candidates
