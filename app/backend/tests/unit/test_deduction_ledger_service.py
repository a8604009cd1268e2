"""Unit tests for the deduction ledger service layer."""

from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_worklog.db")

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from app.backend.src.db import get_engine, session_scope
from app.backend.src.models import Driver, Rcti, RctiDeduction, RctiDeductionApplication
from app.backend.src.models.base import Base
from app.backend.src.schemas.deduction import DeductionCreate, DeductionUpdate
from app.backend.src.services import deduction_ledger


@pytest.fixture(autouse=True)
def setup_database() -> None:  # type: ignore[no-untyped-def]
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def drivers() -> dict[str, int]:
    with session_scope() as session:
        contractor = Driver(driver="Alex Contractor", type="Contractor")
        employee = Driver(driver="Eve Employee", type="Employee")
        session.add_all([contractor, employee])
        session.flush()
        return {"contractor": contractor.id, "employee": employee.id}


def _create(driver_id: int, **overrides: object) -> RctiDeduction:
    payload = {
        "driver_id": driver_id,
        "type": "deduction",
        "description": "  Uniform purchase ",
        "total_amount": 240.0,
        "frequency": "weekly",
        "amount_per_cycle": 60.0,
        "start_date": date(2025, 1, 13),
    }
    payload.update(overrides)
    with session_scope() as session:
        return deduction_ledger.create_deduction(session, DeductionCreate(**payload))


def _apply_once(deduction_id: int, amount: float) -> None:
    with session_scope() as session:
        deduction = session.get(RctiDeduction, deduction_id)
        rcti = Rcti(
            driver_id=deduction.driver_id,
            week_ending=date(2025, 1, 19),
            invoice_number=f"RCTI-APPLIED-{deduction_id}",
            driver_name="Alex Contractor",
            gst_status="not_registered",
            gst_mode="exclusive",
            status="finalised",
        )
        session.add(rcti)
        session.flush()
        session.add(
            RctiDeductionApplication(deduction_id=deduction.id, rcti_id=rcti.id, amount=amount)
        )
        deduction.amount_paid = amount
        deduction.amount_remaining = deduction.total_amount - amount


def test_create_initialises_balances(drivers: dict[str, int]) -> None:
    deduction = _create(drivers["contractor"])

    assert deduction.description == "Uniform purchase"
    assert deduction.amount_paid == 0.0
    assert deduction.amount_remaining == 240.0
    assert deduction.status == "active"
    assert deduction.applications == []


def test_create_once_forces_cycle_amount_to_total(drivers: dict[str, int]) -> None:
    deduction = _create(drivers["contractor"], frequency="once", amount_per_cycle=None)

    assert deduction.amount_per_cycle == 240.0


def test_create_defaults_start_date_to_today(drivers: dict[str, int]) -> None:
    deduction = _create(drivers["contractor"], start_date=None)

    assert deduction.start_date == date.today()


def test_create_rejects_employee_driver(drivers: dict[str, int]) -> None:
    with pytest.raises(HTTPException) as exc:
        _create(drivers["employee"])

    assert exc.value.status_code == 400
    assert exc.value.detail == "Deductions only apply to contractors and subcontractors"


def test_create_rejects_missing_driver(drivers: dict[str, int]) -> None:
    with pytest.raises(HTTPException) as exc:
        _create(9999)

    assert exc.value.status_code == 404


def test_recurring_payload_requires_cycle_amount() -> None:
    with pytest.raises(ValidationError):
        DeductionCreate(
            driver_id=1,
            type="deduction",
            description="Loan",
            total_amount=100.0,
            frequency="fortnightly",
        )


def test_list_defaults_to_active_entries(drivers: dict[str, int]) -> None:
    active = _create(drivers["contractor"])
    cancelled = _create(drivers["contractor"], description="Old")
    with session_scope() as session:
        session.get(RctiDeduction, cancelled.id).status = "cancelled"

    with session_scope() as session:
        default = deduction_ledger.list_deductions(session)
        cancelled_only = deduction_ledger.list_deductions(session, status_filter="cancelled")

    assert [item.id for item in default] == [active.id]
    assert [item.id for item in cancelled_only] == [cancelled.id]


def test_update_without_applications_recomputes_remaining(drivers: dict[str, int]) -> None:
    deduction = _create(drivers["contractor"])

    with session_scope() as session:
        updated = deduction_ledger.update_deduction(
            session, deduction.id, DeductionUpdate(total_amount=300.0, notes="Revised")
        )

    assert updated.total_amount == 300.0
    assert updated.amount_remaining == 300.0
    assert updated.notes == "Revised"


def test_update_rejects_total_change_after_application(drivers: dict[str, int]) -> None:
    deduction = _create(drivers["contractor"])
    _apply_once(deduction.id, 60.0)

    with pytest.raises(HTTPException) as exc:
        with session_scope() as session:
            deduction_ledger.update_deduction(
                session, deduction.id, DeductionUpdate(total_amount=500.0)
            )

    assert exc.value.status_code == 400
    assert exc.value.detail == "Cannot change total amount after deduction has been applied"


def test_update_rejects_schedule_change_after_application(drivers: dict[str, int]) -> None:
    deduction = _create(drivers["contractor"])
    _apply_once(deduction.id, 60.0)

    with pytest.raises(HTTPException) as exc:
        with session_scope() as session:
            deduction_ledger.update_deduction(
                session, deduction.id, DeductionUpdate(amount_per_cycle=80.0)
            )

    assert exc.value.status_code == 400


def test_update_accepts_unchanged_total_after_application(drivers: dict[str, int]) -> None:
    deduction = _create(drivers["contractor"])
    _apply_once(deduction.id, 60.0)

    with session_scope() as session:
        updated = deduction_ledger.update_deduction(
            session,
            deduction.id,
            DeductionUpdate(total_amount=240.0, description="Uniform (2 shirts)"),
        )

    assert updated.description == "Uniform (2 shirts)"
    assert updated.amount_paid == 60.0
    assert updated.amount_remaining == 180.0


def test_delete_without_applications_removes_entry(drivers: dict[str, int]) -> None:
    deduction = _create(drivers["contractor"])

    with session_scope() as session:
        message, remaining = deduction_ledger.delete_deduction(session, deduction.id)

    assert message == "Deduction deleted successfully"
    assert remaining is None
    with session_scope() as session:
        assert session.get(RctiDeduction, deduction.id) is None


def test_delete_with_applications_cancels_entry(drivers: dict[str, int]) -> None:
    deduction = _create(drivers["contractor"])
    _apply_once(deduction.id, 60.0)

    with session_scope() as session:
        message, cancelled = deduction_ledger.delete_deduction(session, deduction.id)

    assert message == "Deduction cancelled"
    assert cancelled is not None
    assert cancelled.status == "cancelled"
    assert len(cancelled.applications) == 1
