"""Session helpers shared by the API, scripts and tests."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ..models.base import Base
from .session import SessionLocal, engine as _engine

LOGGER = structlog.get_logger(__name__)


@contextmanager
def get_session() -> Iterator[Session]:
    """Yield a session for one request.

    Services commit explicitly; anything still pending when an exception
    escapes is rolled back.
    """

    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session_dependency() -> Iterator[Session]:
    with get_session() as session:
        yield session


def get_engine() -> Engine:
    return _engine


def create_schema() -> None:
    """Create every payroll table that does not exist yet."""

    Base.metadata.create_all(bind=_engine)
    LOGGER.info("database_schema_created", tables=sorted(Base.metadata.tables))


@contextmanager
def session_scope() -> Iterator[Session]:
    """Commit on success, roll back on error. Used by scripts, seeding and tests."""

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "Base",
    "create_schema",
    "get_engine",
    "get_session",
    "get_session_dependency",
    "session_scope",
]
