"""
Tests for engine construction and session scoping.
"""

import uuid

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from expo_conflicts import database
from expo_conflicts.models.activities import ActivitySpeaker
from expo_conflicts.models.companies import Company


@pytest.fixture
def scoped_sessions(db_engine, monkeypatch):
    monkeypatch.setattr(database, "SessionLocal", sessionmaker(autoflush=False, bind=db_engine))
    return db_engine


class TestBuildEngine:
    def test_sqlite_enforces_foreign_keys(self, db_engine):
        with db_engine.connect() as connection:
            assert connection.execute(sa.text("PRAGMA foreign_keys")).scalar() == 1

    def test_orphan_speaker_is_rejected(self, db_session):
        db_session.add(ActivitySpeaker(activity_id=uuid.uuid4(), speaker_id=uuid.uuid4()))
        with pytest.raises(IntegrityError):
            db_session.commit()


class TestSessionScope:
    def test_commits_on_exit(self, scoped_sessions):
        with database.session_scope() as db:
            db.add(Company(name="Kept"))

        with database.session_scope() as db:
            assert db.query(Company).filter_by(name="Kept").count() == 1

    def test_rolls_back_on_error(self, scoped_sessions):
        with pytest.raises(RuntimeError):
            with database.session_scope() as db:
                db.add(Company(name="Dropped"))
                db.flush()
                raise RuntimeError("boom")

        with database.session_scope() as db:
            assert db.query(Company).filter_by(name="Dropped").count() == 0
