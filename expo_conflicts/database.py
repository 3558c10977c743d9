"""
Database engine and session handling.

The schema itself is owned by Alembic (`alembic upgrade head`); this module
only builds the engine and hands out sessions.

Provides:
- build_engine() for the configured database or an explicit URL
- SessionLocal factory bound to the configured engine
- session_scope() commit/rollback unit of work
- get_db() request-scoped session for FastAPI
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from expo_conflicts.config import get_settings

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for SQLite or PostgreSQL.

    SQLite gets a single shared connection (StaticPool) so threads served by
    FastAPI and in-memory test databases see the same data, and foreign keys
    are switched on for every connection. PostgreSQL gets a small pre-pinged
    pool.
    """
    if database_url.lower().startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        database_url,
        pool_size=5,
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=echo,
    )


settings = get_settings()

if settings.is_production:
    settings.validate_production_config()

engine = build_engine(settings.database_url, echo=settings.log_level == "DEBUG")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Unit of work outside a request, e.g. the expiry sweep from a script.

        with session_scope() as db:
            escalate_expired_conflicts(db, target_id, actor_id)

    Commits on normal exit and rolls back if the block raises.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request, committed when the handler returns."""
    with session_scope() as db:
        yield db


def check_connection() -> bool:
    """Round-trip a trivial query; used by the health endpoint."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
    return True
