"""
FastAPI dependency injection providers.

Provides database sessions and the acting user's identity.
"""

import logging
from typing import Generator, Optional
from uuid import UUID

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from expo_conflicts.database import get_db

logger = logging.getLogger(__name__)


def get_db_session() -> Generator[Session, None, None]:
    """
    Dependency injection for database session.

    Commits when the request succeeds and rolls back when it raises.
    """
    yield from get_db()


def get_actor_id(
    x_user_id: Optional[str] = Header(None, description="Acting user ID (UUID)"),
) -> Optional[UUID]:
    """
    Actor identity from the X-User-ID header.

    Authentication lives outside this service; the id is only recorded for
    audit attribution.

    Raises:
        HTTPException: 400 if the header is not a UUID
    """
    if x_user_id is None:
        return None
    try:
        return UUID(x_user_id)
    except ValueError:
        logger.warning(f"Rejected malformed X-User-ID header: {x_user_id!r}")
        raise HTTPException(status_code=400, detail="X-User-ID must be a UUID")
