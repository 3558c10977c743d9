"""
FastAPI application for the conflict engine.

Exposes detection, stand conflict, scheduling, workflow and history
operations over HTTP. Engine errors map to status codes:
- NotFoundError -> 404
- InvalidTransitionError -> 409
- ConstraintViolationError, ComputationError -> 422
- anything unexpected -> 500
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional, Union
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from expo_conflicts import __version__, repositories, services
from expo_conflicts.api.dependencies import get_actor_id, get_db_session
from expo_conflicts.api.middleware import RequestIdLogFilter, RequestLoggingMiddleware
from expo_conflicts.api.models import (
    AssignmentRequestResponse,
    AutoScheduleRequest,
    AutoScheduleResponse,
    CompanyClaimResponse,
    ConflictStatisticsResponse,
    DetectionResponse,
    ErrorResponse,
    EscalationSweepRequest,
    EscalationSweepResponse,
    HealthResponse,
    HistoryEntryResponse,
    ItemErrorResponse,
    OpenStandConflictsResponse,
    PriorityScoreResponse,
    ReportConflictRequest,
    RequestTransitionRequest,
    RevertHistoryRequest,
    ScheduleConflictResponse,
    ScheduledActivityResponse,
    ScheduleSummary,
    SlotOptionsRequest,
    SlotResponse,
    SlotSetResponse,
    SlotSuggestionResponse,
    StandConflictCandidateResponse,
    StandConflictResponse,
    StandStatisticsResponse,
    SubmitAssignmentRequest,
    SuggestSlotsRequest,
    TransitionRequest,
    UnscheduledActivityResponse,
)
from expo_conflicts.config import get_settings
from expo_conflicts.database import check_connection
from expo_conflicts.engine.errors import (
    ComputationError,
    ConstraintViolationError,
    EngineError,
    InvalidTransitionError,
    NotFoundError,
)
from expo_conflicts.engine.lifecycle import TransitionPayload
from expo_conflicts.models.conflicts import StandConflict

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"

ERROR_STATUS = {
    NotFoundError: 404,
    InvalidTransitionError: 409,
    ConstraintViolationError: 422,
    ComputationError: 422,
}

ConflictResponse = Union[ScheduleConflictResponse, StandConflictResponse]


def configure_logging() -> None:
    """Root logging at the configured level, with request ids on every line."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        handler.addFilter(RequestIdLogFilter())


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()
    logger.info("Starting conflict engine API")
    if not check_connection():
        logger.warning("Database not reachable at startup")

    yield

    logger.info("Shutting down conflict engine API")


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Expo Conflicts API",
    description="""
# Expo Conflicts API

Conflict detection and assignment resolution for trade-show events.

## Core Workflows

### Activity conflicts
1. **POST /events/{event_id}/activity-conflicts/detect** - scan and store new conflicts
2. **POST /conflicts/{conflict_id}/transitions** - assign, resolve, escalate, ignore, cancel, approve

### Stand conflicts
1. **POST /events/{event_id}/assignment-requests** - companies request stands
2. **GET /events/{event_id}/stand-conflicts/candidates** - contested stands with scored claims
3. **POST /events/{event_id}/stand-conflicts/open** - persist them for review

### Scheduling
- **POST /events/{event_id}/slots** - candidate slots
- **POST /events/{event_id}/auto-schedule** - greedy placement proposal

## Error Handling

- **404** - Referenced record not found
- **409** - Transition not allowed from the current state (re-fetch and retry)
- **422** - Constraint violation or malformed input
- **500** - Server error
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(EngineError)
async def engine_exception_handler(request, exc: EngineError):
    """Map engine errors to status codes with the standard envelope."""
    status_code = next(
        (code for error_class, code in ERROR_STATUS.items() if isinstance(exc, error_class)),
        500,
    )
    logger.info(f"{exc.error_type}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error_type=exc.error_type,
            message=exc.message,
            retryable=exc.retryable,
            details=exc.details,
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_type": "http_error",
            "message": exc.detail,
            "retryable": exc.status_code >= 500,
            "details": {},
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error_type": "internal_error",
            "message": "An unexpected error occurred",
            "retryable": False,
            "details": {},
        },
    )


# =============================================================================
# Helpers
# =============================================================================


def _conflict_response(conflict) -> ConflictResponse:
    if isinstance(conflict, StandConflict):
        return StandConflictResponse.model_validate(conflict)
    return ScheduleConflictResponse.model_validate(conflict)


def _errors(errors) -> list[ItemErrorResponse]:
    return [ItemErrorResponse.model_validate(e) for e in errors]


def _slot_options(body: SlotOptionsRequest):
    return services.default_slot_options(
        body.start_date,
        body.end_date,
        slot_minutes=body.slot_minutes,
        day_start_hour=body.day_start_hour,
        day_end_hour=body.day_end_hour,
        allowed_weekdays=body.allowed_weekdays,
        excluded_dates=body.excluded_dates,
    )


# =============================================================================
# Health & Status Endpoints
# =============================================================================


@app.get("/health", response_model=HealthResponse, summary="Health check", tags=["System"])
def health_check(db: Session = Depends(get_db_session)) -> HealthResponse:
    """Check API health and database connectivity."""
    try:
        db.execute(text("SELECT 1"))
        database_connected = True
    except Exception as e:
        logger.error(f"Health check database query failed: {e}")
        database_connected = False

    return HealthResponse(
        status="healthy" if database_connected else "unhealthy",
        version=__version__,
        database_connected=database_connected,
    )


# =============================================================================
# Activity Conflict Endpoints
# =============================================================================


@app.post(
    "/events/{event_id}/activity-conflicts/detect",
    response_model=DetectionResponse,
    summary="Detect activity conflicts",
    description="""
Scan every pair of active activities of the event and store conflicts that
have no active record yet. Idempotent: a second run on an unchanged event
reports `newly_created = 0`. Activities with malformed time ranges are
listed in `errors` and do not stop the scan.
    """,
    tags=["Activity Conflicts"],
)
def detect_activity_conflicts(
    event_id: UUID,
    db: Session = Depends(get_db_session),
    actor_id: Optional[UUID] = Depends(get_actor_id),
) -> DetectionResponse:
    result = services.detect_activity_conflicts(db, event_id, actor_id)
    db.flush()
    return DetectionResponse(
        total_found=result.total_found,
        newly_created=result.newly_created,
        records=[ScheduleConflictResponse.model_validate(c) for c in result.records],
        errors=_errors(result.errors),
    )


@app.post(
    "/events/{event_id}/activity-conflicts",
    response_model=ScheduleConflictResponse,
    status_code=201,
    summary="Report a conflict manually",
    tags=["Activity Conflicts"],
)
def report_activity_conflict(
    event_id: UUID,
    request: ReportConflictRequest,
    db: Session = Depends(get_db_session),
    actor_id: Optional[UUID] = Depends(get_actor_id),
) -> ScheduleConflictResponse:
    activity = repositories.get_activity(db, request.activity_a_id)
    if activity is None or activity.event_id != event_id:
        raise NotFoundError(f"Activity {request.activity_a_id} not found in event {event_id}")

    conflict = services.report_conflict(
        db,
        request.activity_a_id,
        request.activity_b_id,
        kind=request.kind,
        description=request.description,
        severity=request.severity,
        method=request.detection_method,
        actor_id=actor_id,
    )
    return ScheduleConflictResponse.model_validate(conflict)


@app.get(
    "/events/{event_id}/activity-conflicts",
    response_model=list[ScheduleConflictResponse],
    summary="List activity conflicts",
    tags=["Activity Conflicts"],
)
def list_activity_conflicts(
    event_id: UUID,
    active_only: bool = Query(default=True, description="Only conflicts still open"),
    db: Session = Depends(get_db_session),
) -> list[ScheduleConflictResponse]:
    if active_only:
        conflicts = repositories.active_conflicts_for_event(db, event_id)
    else:
        conflicts = repositories.schedule_conflicts_for_event(db, event_id)
    return [ScheduleConflictResponse.model_validate(c) for c in conflicts]


@app.get(
    "/events/{event_id}/activity-conflicts/statistics",
    response_model=ConflictStatisticsResponse,
    summary="Activity conflict statistics",
    tags=["Activity Conflicts"],
)
def activity_conflict_statistics(event_id: UUID, db: Session = Depends(get_db_session)):
    return ConflictStatisticsResponse(**services.conflict_statistics(db, event_id))


# =============================================================================
# Stand Conflict Endpoints
# =============================================================================


@app.get(
    "/events/{event_id}/stand-conflicts/candidates",
    response_model=list[StandConflictCandidateResponse],
    summary="Contested stands",
    description="Stands requested by more than one company, with each claim scored. Nothing is stored.",
    tags=["Stand Conflicts"],
)
def stand_conflict_candidates(event_id: UUID, db: Session = Depends(get_db_session)):
    return [
        StandConflictCandidateResponse(
            event_id=c.event_id,
            stand_id=c.stand_id,
            kind=c.kind.value,
            resolution_priority=c.resolution_priority.value,
            estimated_impact=c.estimated_impact.value,
            companies=[CompanyClaimResponse.model_validate(claim) for claim in c.companies],
        )
        for c in services.detect_stand_conflicts(db, event_id)
    ]


@app.post(
    "/events/{event_id}/stand-conflicts/open",
    response_model=OpenStandConflictsResponse,
    summary="Persist stand conflicts",
    tags=["Stand Conflicts"],
)
def open_stand_conflicts(
    event_id: UUID,
    db: Session = Depends(get_db_session),
    actor_id: Optional[UUID] = Depends(get_actor_id),
) -> OpenStandConflictsResponse:
    result = services.open_stand_conflicts(db, event_id, actor_id)
    return OpenStandConflictsResponse(
        created=[StandConflictResponse.model_validate(c) for c in result.created],
        skipped_stand_ids=result.skipped_stand_ids,
    )


@app.get(
    "/events/{event_id}/stand-conflicts/statistics",
    response_model=StandStatisticsResponse,
    summary="Stand conflict statistics",
    tags=["Stand Conflicts"],
)
def stand_conflict_statistics(event_id: UUID, db: Session = Depends(get_db_session)):
    return StandStatisticsResponse(**services.stand_conflict_statistics(db, event_id))


@app.get(
    "/companies/{company_id}/priority-score",
    response_model=PriorityScoreResponse,
    summary="Company priority score",
    tags=["Stand Conflicts"],
)
def company_priority_score(company_id: UUID, db: Session = Depends(get_db_session)):
    return PriorityScoreResponse(
        company_id=company_id,
        score=services.compute_priority_score(db, company_id),
    )


@app.post(
    "/events/{event_id}/assignment-requests",
    response_model=AssignmentRequestResponse,
    status_code=201,
    summary="Submit a stand request",
    tags=["Stand Conflicts"],
)
def submit_assignment_request(
    event_id: UUID,
    request: SubmitAssignmentRequest,
    db: Session = Depends(get_db_session),
):
    created = services.submit_assignment_request(
        db,
        company_id=request.company_id,
        event_id=event_id,
        stand_id=request.stand_id,
        mode=request.mode,
        response_deadline=request.response_deadline,
        notes=request.notes,
    )
    return AssignmentRequestResponse.model_validate(created)


@app.post(
    "/assignment-requests/{request_id}/transitions",
    response_model=AssignmentRequestResponse,
    summary="Move a stand request through its workflow",
    tags=["Stand Conflicts"],
)
def transition_assignment_request(
    request_id: UUID,
    request: RequestTransitionRequest,
    db: Session = Depends(get_db_session),
):
    updated = services.transition_request(db, request_id, request.action)
    return AssignmentRequestResponse.model_validate(updated)


# =============================================================================
# Workflow Endpoints
# =============================================================================


@app.get(
    "/conflicts/expired",
    response_model=list[ConflictResponse],
    summary="Expired conflicts",
    description="Non-terminal conflicts whose deadline has passed. Nothing is changed.",
    tags=["Workflow"],
)
def expired_conflicts(
    event_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db_session),
):
    return [_conflict_response(c) for c in services.find_expired_conflicts(db, event_id)]


@app.post(
    "/conflicts/expired/escalate",
    response_model=EscalationSweepResponse,
    summary="Escalate expired conflicts under review",
    tags=["Workflow"],
)
def escalate_expired(
    request: EscalationSweepRequest,
    db: Session = Depends(get_db_session),
    actor_id: Optional[UUID] = Depends(get_actor_id),
) -> EscalationSweepResponse:
    result = services.escalate_expired_conflicts(db, request.target_id, actor_id, request.event_id)
    return EscalationSweepResponse(
        escalated=result.escalated,
        skipped=result.skipped,
        errors=_errors(result.errors),
    )


@app.get(
    "/conflicts/{conflict_id}",
    response_model=ConflictResponse,
    summary="Get a conflict",
    tags=["Workflow"],
)
def get_conflict(conflict_id: UUID, db: Session = Depends(get_db_session)):
    conflict = repositories.get_conflict(db, conflict_id)
    if conflict is None:
        raise NotFoundError(f"Conflict {conflict_id} not found")
    return _conflict_response(conflict)


@app.post(
    "/conflicts/{conflict_id}/transitions",
    response_model=ConflictResponse,
    summary="Apply a workflow action",
    description="""
Apply `assign`, `start_resolution`, `resolve`, `escalate`, `ignore`, `cancel`
or `approve` to a schedule or stand conflict.

- **409**: the current state does not allow the action, or another reviewer
  changed the conflict first; the record is unchanged
- **422**: a required field for the action is missing, or the winning
  company is not among the contenders
    """,
    tags=["Workflow"],
)
def transition_conflict(
    conflict_id: UUID,
    request: TransitionRequest,
    db: Session = Depends(get_db_session),
    actor_id: Optional[UUID] = Depends(get_actor_id),
):
    payload = TransitionPayload(actor_id=actor_id, **request.model_dump(exclude={"action"}))
    conflict = services.transition_conflict(db, conflict_id, request.action, payload)
    db.flush()
    return _conflict_response(conflict)


# =============================================================================
# Scheduling Endpoints
# =============================================================================


@app.post(
    "/events/{event_id}/slots",
    response_model=SlotSetResponse,
    summary="Generate candidate slots",
    tags=["Scheduling"],
)
def generate_slots(event_id: UUID, request: SlotOptionsRequest, db: Session = Depends(get_db_session)):
    slot_set = services.generate_slots(db, event_id, _slot_options(request))
    return SlotSetResponse(
        total=slot_set.total,
        available=slot_set.available_count,
        occupied=slot_set.occupied_count,
        slots=[SlotResponse.model_validate(s) for s in slot_set.slots],
        errors=_errors(slot_set.errors),
    )


@app.post(
    "/events/{event_id}/auto-schedule",
    response_model=AutoScheduleResponse,
    summary="Propose times for unscheduled activities",
    description="Greedy first-fit by activity type priority. Proposals are not saved.",
    tags=["Scheduling"],
)
def auto_schedule(event_id: UUID, request: AutoScheduleRequest, db: Session = Depends(get_db_session)):
    result = services.auto_schedule(
        db,
        event_id,
        _slot_options(request),
        activity_ids=request.activity_ids,
        priority_by_type=request.priority_by_type,
        margin_minutes=request.margin_minutes,
    )
    return AutoScheduleResponse(
        scheduled=[ScheduledActivityResponse.model_validate(s) for s in result.scheduled],
        unscheduled=[UnscheduledActivityResponse.model_validate(u) for u in result.unscheduled],
        summary=ScheduleSummary(
            scheduled=len(result.scheduled),
            unscheduled=len(result.unscheduled),
            slots_used=result.slots_used,
            slots_remaining=result.slots_remaining,
        ),
        errors=_errors(result.errors),
    )


@app.post(
    "/events/{event_id}/activities/{activity_id}/slot-suggestions",
    response_model=list[SlotSuggestionResponse],
    summary="Suggest slots for an activity",
    tags=["Scheduling"],
)
def suggest_slots(
    event_id: UUID,
    activity_id: UUID,
    request: SuggestSlotsRequest,
    db: Session = Depends(get_db_session),
):
    suggestions = services.suggest_slots(db, event_id, activity_id, _slot_options(request), request.limit)
    return [SlotSuggestionResponse.model_validate(s) for s in suggestions]


# =============================================================================
# History Endpoints
# =============================================================================


@app.get(
    "/events/{event_id}/history",
    response_model=list[HistoryEntryResponse],
    summary="Assignment history",
    tags=["History"],
)
def event_history(
    event_id: UUID,
    conflict_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db_session),
):
    return [HistoryEntryResponse.model_validate(e) for e in repositories.history_for_event(db, event_id, conflict_id)]


@app.post(
    "/history/{entry_id}/revert",
    response_model=HistoryEntryResponse,
    status_code=201,
    summary="Revert a history entry",
    tags=["History"],
)
def revert_history(
    entry_id: UUID,
    request: RevertHistoryRequest,
    db: Session = Depends(get_db_session),
    actor_id: Optional[UUID] = Depends(get_actor_id),
):
    entry = services.revert_history_entry(db, entry_id, actor_id, request.reason)
    return HistoryEntryResponse.model_validate(entry)
