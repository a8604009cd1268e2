"""Tests for the development data seeder."""

from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_worklog.db")

import pytest

from app.backend.src.db import get_engine, session_scope
from app.backend.src.models import CompanySettings, Job, RctiDeduction
from app.backend.src.models.base import Base
from app.backend.src.services.seed import seed_development_data


@pytest.fixture(autouse=True)
def setup_database() -> None:  # type: ignore[no-untyped-def]
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def test_seed_creates_demo_week() -> None:
    with session_scope() as session:
        result = seed_development_data(session, today=date(2025, 1, 22))
        assert result.user_created is True
        assert result.driver_created is True
        assert result.jobs_created == 4
        assert result.week_ending == date(2025, 1, 19)

    with session_scope() as session:
        jobs = session.query(Job).all()
        assert all(date(2025, 1, 13) <= job.job_date <= date(2025, 1, 19) for job in jobs)
        assert session.query(CompanySettings).count() == 1
        assert session.query(RctiDeduction).count() == 1


def test_seed_is_idempotent() -> None:
    with session_scope() as session:
        seed_development_data(session, today=date(2025, 1, 22))

    with session_scope() as session:
        result = seed_development_data(
            session, today=date(2025, 1, 22), auth0_sub="auth0|demo"
        )
        assert result.user_created is False
        assert result.driver_created is False
        assert result.jobs_created == 0
        assert result.user.auth0_sub == "auth0|demo"

    with session_scope() as session:
        assert session.query(Job).count() == 4
        assert session.query(RctiDeduction).count() == 1
