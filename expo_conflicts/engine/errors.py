"""
Error taxonomy for the conflict engine.

Every failure is deterministic for a given input, so nothing here is retryable.
Per-item computation failures are reported as ItemError values instead of
being raised, so one malformed activity never aborts a whole run.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


class EngineError(Exception):
    """Base exception for engine operations."""

    error_type: str = "engine_error"
    retryable: bool = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(EngineError):
    """
    Referenced record does not exist or is soft-deleted.

    Covers activities, conflicts, assignment requests, companies and
    history entries.
    """

    error_type = "not_found"


class InvalidTransitionError(EngineError):
    """
    A state-machine transition was attempted from a state that forbids it.

    Also raised when a concurrent writer changed the record first; the caller
    must re-fetch the current state before trying again.
    """

    error_type = "invalid_transition"


class ConstraintViolationError(EngineError):
    """
    A write was rejected before touching storage.

    Causes:
    - Duplicate active conflict for the same pair and kind
    - Winning company not among the conflicting companies
    - Required transition payload field missing
    - Second live assignment request for the same company and event
    """

    error_type = "constraint_violation"


class ComputationError(EngineError):
    """
    Malformed input for a single item (end <= start, unparseable date).

    Collected per item via ItemError.from_exception().
    """

    error_type = "computation_error"


@dataclass
class ItemError:
    """A per-item failure reported alongside successful results."""

    item_id: Optional[str]
    error_type: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, item_id: Optional[Any], exc: EngineError) -> "ItemError":
        return cls(
            item_id=str(item_id) if item_id is not None else None,
            error_type=exc.error_type,
            message=exc.message,
            details=exc.details,
        )
