"""
Pytest configuration and fixtures for the conflict engine tests.

Provides an in-memory database session per test and factories for
activities, companies and assignment requests.
"""

import uuid
from datetime import datetime, timezone
from typing import Callable, Generator, Optional

import pytest
import sqlalchemy as sa
from sqlalchemy.orm import Session, sessionmaker

from expo_conflicts.database import build_engine
from expo_conflicts.models.activities import Activity, ActivityResource, ActivitySpeaker
from expo_conflicts.models.base import Base
from expo_conflicts.models.companies import AssignmentRequest, Company


def at(hour: int, minute: int = 0, day: int = 2) -> datetime:
    """UTC datetime on 2026-03-<day> (a Monday for day=2)."""
    return datetime(2026, 3, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_engine():
    """
    In-memory SQLite engine shared by every connection of one test.

    StaticPool keeps a single connection so the API TestClient threads see
    the same database.
    """
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield engine

    with engine.begin() as connection:
        connection.execute(sa.text("PRAGMA foreign_keys=OFF"))
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Create a clean database session for each test.

    Yields:
        Session: SQLAlchemy session for database operations
    """
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def event_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def make_activity(db_session: Session, event_id: uuid.UUID) -> Callable[..., Activity]:
    """
    Factory for persisted activities.

    Speakers are given as speaker ids; resources as (resource_id, is_critical)
    tuples.
    """

    def _make(
        title: str = "Session",
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        location: Optional[str] = None,
        modality: str = "in_person",
        speakers: tuple = (),
        resources: tuple = (),
        track_id: Optional[uuid.UUID] = None,
        participants: int = 0,
        state: str = "scheduled",
        activity_type: str = "other",
        duration_minutes: Optional[int] = None,
        event: Optional[uuid.UUID] = None,
    ) -> Activity:
        activity = Activity(
            event_id=event or event_id,
            title=title,
            activity_type=activity_type,
            start_time=start,
            end_time=end,
            duration_minutes=duration_minutes,
            location=location,
            modality=modality,
            track_id=track_id,
            registered_participants=participants,
            state=state,
        )
        activity.speakers = [
            ActivitySpeaker(speaker_id=speaker_id, role="speaker", position=i)
            for i, speaker_id in enumerate(speakers)
        ]
        activity.resources = [
            ActivityResource(resource_id=resource_id, is_critical=critical)
            for resource_id, critical in resources
        ]
        db_session.add(activity)
        db_session.commit()
        return activity

    return _make


@pytest.fixture
def make_company(db_session: Session) -> Callable[..., Company]:
    def _make(
        name: str = "Acme",
        participations: int = 0,
        rating: Optional[float] = None,
        first_year: Optional[int] = None,
    ) -> Company:
        company = Company(
            name=name,
            participation_count=participations,
            average_rating=rating,
            first_participation_at=datetime(first_year, 1, 15, tzinfo=timezone.utc) if first_year else None,
        )
        db_session.add(company)
        db_session.commit()
        return company

    return _make


@pytest.fixture
def make_request(db_session: Session, event_id: uuid.UUID) -> Callable[..., AssignmentRequest]:
    def _make(
        company: Company,
        stand_id: Optional[uuid.UUID],
        state: str = "requested",
        requested_at: Optional[datetime] = None,
        mode: str = "direct_pick",
    ) -> AssignmentRequest:
        request = AssignmentRequest(
            company_id=company.id,
            event_id=event_id,
            stand_id=stand_id,
            mode=mode,
            state=state,
            priority_score=0.0,
            requested_at=requested_at or at(8),
            notification_log=[],
        )
        db_session.add(request)
        db_session.commit()
        return request

    return _make
