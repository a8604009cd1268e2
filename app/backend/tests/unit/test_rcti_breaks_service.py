"""Unit tests for break line regeneration and RCTI totals."""

from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_worklog.db")

import pytest

from app.backend.src.db import get_engine, session_scope
from app.backend.src.models import Driver, Job, Rcti, RctiLine
from app.backend.src.models.base import Base
from app.backend.src.models.rcti import BREAK_DEDUCTION_CUSTOMER
from app.backend.src.services.rcti_breaks import recalculate_breaks_and_totals

WEEK_ENDING = date(2025, 1, 19)


@pytest.fixture(autouse=True)
def setup_database() -> None:  # type: ignore[no-untyped-def]
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def _job_line(job: Job, hours: float, rate: float) -> RctiLine:
    amount = round(hours * rate, 2)
    return RctiLine(
        job_id=job.id,
        job_date=job.job_date,
        customer=job.customer,
        truck_type=job.truck_type,
        charged_hours=hours,
        rate_per_hour=rate,
        amount_ex_gst=amount,
        gst_amount=0.0,
        amount_inc_gst=amount,
    )


@pytest.fixture()
def rcti_id() -> int:
    with session_scope() as session:
        driver = Driver(driver="Alex Contractor", type="Contractor", breaks=0.5)
        jobs = [
            Job(job_date=date(2025, 1, 13), driver="Alex Contractor", customer="Acme", truck_type="Tray"),
            Job(job_date=date(2025, 1, 14), driver="Alex Contractor", customer="Acme", truck_type="Tray"),
            Job(job_date=date(2025, 1, 15), driver="Alex Contractor", customer="Acme", truck_type="Crane"),
            Job(job_date=date(2025, 1, 16), driver="Alex Contractor", customer="Acme", truck_type="Tray"),
        ]
        session.add_all([driver, *jobs])
        session.flush()
        rcti = Rcti(
            driver=driver,
            week_ending=WEEK_ENDING,
            invoice_number="RCTI-19012025-ALEX",
            driver_name=driver.driver,
            gst_status="not_registered",
            gst_mode="exclusive",
            status="draft",
            lines=[
                _job_line(jobs[0], 8.0, 85.0),
                _job_line(jobs[1], 9.0, 85.0),
                _job_line(jobs[2], 10.0, 110.0),
                _job_line(jobs[3], 7.0, 85.0),
            ],
        )
        session.add(rcti)
        session.flush()
        return rcti.id


def _break_lines(session, rcti_id: int) -> list[RctiLine]:  # type: ignore[no-untyped-def]
    return (
        session.query(RctiLine)
        .filter(RctiLine.rcti_id == rcti_id, RctiLine.customer == BREAK_DEDUCTION_CUSTOMER)
        .order_by(RctiLine.id)
        .all()
    )


def test_recalculation_adds_one_break_line_per_group(rcti_id: int) -> None:
    with session_scope() as session:
        rcti = recalculate_breaks_and_totals(session, rcti_id)
        totals = (rcti.subtotal, rcti.gst, rcti.total)

    with session_scope() as session:
        breaks = _break_lines(session, rcti_id)

    assert [(line.description, line.charged_hours, line.amount_inc_gst) for line in breaks] == [
        ("Lunch Breaks - Tray", -1.0, -85.0),
        ("Lunch Breaks - Crane", -0.5, -55.0),
    ]
    assert all(line.job_id is None for line in breaks)
    # 680 + 765 + 1100 + 595 - 85 - 55
    assert totals == (3000.0, 0.0, 3000.0)


def test_recalculation_is_idempotent(rcti_id: int) -> None:
    with session_scope() as session:
        recalculate_breaks_and_totals(session, rcti_id)
    with session_scope() as session:
        first = [(line.truck_type, line.charged_hours) for line in _break_lines(session, rcti_id)]
        first_total = session.get(Rcti, rcti_id).total

    with session_scope() as session:
        recalculate_breaks_and_totals(session, rcti_id)
    with session_scope() as session:
        second = [(line.truck_type, line.charged_hours) for line in _break_lines(session, rcti_id)]
        second_total = session.get(Rcti, rcti_id).total

    assert first == second
    assert first_total == second_total


def test_recalculation_drops_breaks_when_no_line_is_eligible(rcti_id: int) -> None:
    with session_scope() as session:
        recalculate_breaks_and_totals(session, rcti_id)

    with session_scope() as session:
        for line in session.query(RctiLine).filter(RctiLine.rcti_id == rcti_id):
            if line.job_id is not None:
                line.charged_hours = 6.0
                line.amount_ex_gst = line.amount_inc_gst = 6.0 * line.rate_per_hour

    with session_scope() as session:
        rcti = recalculate_breaks_and_totals(session, rcti_id)
        total = rcti.total

    with session_scope() as session:
        assert _break_lines(session, rcti_id) == []
    assert total == 6.0 * (85.0 * 3 + 110.0)


def test_recalculation_uses_rcti_gst_settings(rcti_id: int) -> None:
    with session_scope() as session:
        rcti = session.get(Rcti, rcti_id)
        rcti.gst_status = "registered"
        rcti.gst_mode = "exclusive"

    with session_scope() as session:
        recalculate_breaks_and_totals(session, rcti_id)

    with session_scope() as session:
        tray_break = _break_lines(session, rcti_id)[0]
        assert tray_break.amount_ex_gst == -85.0
        assert tray_break.gst_amount == -8.5
        assert tray_break.amount_inc_gst == -93.5


def test_recalculation_of_missing_rcti_raises() -> None:
    with pytest.raises(ValueError):
        with session_scope() as session:
            recalculate_breaks_and_totals(session, 999)
