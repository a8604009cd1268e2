"""API tests for the RCTI lifecycle endpoints."""

from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path
from types import SimpleNamespace

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_worklog.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from app.backend.src.core.security import get_current_user
from app.backend.src.db import get_engine, session_scope
from app.backend.src.main import app
from app.backend.src.models import (
    CompanySettings,
    Driver,
    Job,
    Rcti,
    RctiDeduction,
    RctiDeductionApplication,
    RctiStatusChange,
)
from app.backend.src.models.base import Base

WEEK_ENDING = "2025-01-19"


@pytest.fixture(autouse=True)
def setup_database() -> None:  # type: ignore[no-untyped-def]
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client() -> TestClient:  # type: ignore[no-untyped-def]
    def _override() -> SimpleNamespace:
        return SimpleNamespace(
            id=1,
            email="payroll@example.com",
            name="Payroll",
            role="admin",
            auth0_sub=None,
            is_active=True,
        )

    app.dependency_overrides[get_current_user] = _override
    yield TestClient(app)
    app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture()
def seeded() -> dict[str, int]:
    with session_scope() as session:
        driver = Driver(
            driver="Alex Contractor",
            type="Contractor",
            gst_status="not_registered",
            gst_mode="exclusive",
            breaks=0.5,
            tray=85.0,
            crane=110.0,
        )
        employee = Driver(driver="Eve Employee", type="Employee")
        session.add_all([driver, employee])
        for day, truck_type, hours in [
            (13, "Tray", 8.0),
            (14, "Tray", 9.0),
            (15, "Crane", 10.0),
            (16, "Tray", 6.0),
        ]:
            session.add(
                Job(
                    job_date=date(2025, 1, day),
                    driver="Alex Contractor",
                    customer="Acme",
                    truck_type=truck_type,
                    pickup="Depot",
                    dropoff="Site",
                    charged_hours=hours,
                )
            )
        session.add(
            Job(
                job_date=date(2025, 1, 21),
                driver="Alex Contractor",
                customer="Acme",
                truck_type="Tray",
                charged_hours=8.0,
            )
        )
        session.add(CompanySettings(company_name="WorkLog Transport", company_abn="12 345 678 901"))
        session.flush()
        loan = RctiDeduction(
            driver_id=driver.id,
            type="deduction",
            description="Fuel card advance",
            total_amount=300.0,
            amount_paid=0.0,
            amount_remaining=300.0,
            frequency="weekly",
            amount_per_cycle=100.0,
            status="active",
            start_date=date(2025, 1, 13),
        )
        tolls = RctiDeduction(
            driver_id=driver.id,
            type="reimbursement",
            description="Tolls",
            total_amount=50.0,
            amount_paid=0.0,
            amount_remaining=50.0,
            frequency="once",
            amount_per_cycle=50.0,
            status="active",
            start_date=date(2025, 1, 13),
        )
        session.add_all([loan, tolls])
        session.flush()
        return {
            "driver": driver.id,
            "employee": employee.id,
            "loan": loan.id,
            "tolls": tolls.id,
        }


@pytest.fixture()
def draft(client: TestClient, seeded: dict[str, int]) -> dict:
    response = client.post(
        "/api/rcti",
        json={"driverId": seeded["driver"], "weekEnding": WEEK_ENDING},
    )
    assert response.status_code == 201
    return response.json()


def _break_lines(rcti: dict) -> list[dict]:
    return [line for line in rcti["lines"] if line["customer"] == "Break Deduction"]


def _job_line(rcti: dict, truck_type: str, hours: float) -> dict:
    return next(
        line
        for line in rcti["lines"]
        if line["truckType"] == truck_type and line["chargedHours"] == hours
    )


def _application_count() -> int:
    with session_scope() as session:
        return session.scalar(select(func.count(RctiDeductionApplication.id)))


def test_create_builds_lines_breaks_and_totals(draft: dict) -> None:
    assert draft["status"] == "draft"
    assert draft["invoiceNumber"] == "RCTI-19012025-ALEXCONTR"
    assert len([line for line in draft["lines"] if line["jobId"] is not None]) == 4
    assert sorted(
        (line["description"], line["chargedHours"]) for line in _break_lines(draft)
    ) == [("Lunch Breaks - Crane", -0.5), ("Lunch Breaks - Tray", -1.0)]
    # 680 + 765 + 1100 + 510 - 85 - 55
    assert draft["subtotal"] == 2915.0
    assert draft["gst"] == 0.0
    assert draft["total"] == 2915.0


def test_create_rejects_week_without_eligible_jobs(
    client: TestClient, draft: dict, seeded: dict[str, int]
) -> None:
    response = client.post(
        "/api/rcti",
        json={"driverId": seeded["driver"], "weekEnding": WEEK_ENDING},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "No eligible jobs found for this driver and week"


def test_create_rejects_employee(client: TestClient, seeded: dict[str, int]) -> None:
    response = client.post(
        "/api/rcti",
        json={"driverId": seeded["employee"], "weekEnding": WEEK_ENDING},
    )

    assert response.status_code == 400


def test_removing_job_line_recomputes_breaks(client: TestClient, draft: dict) -> None:
    line = _job_line(draft, "Tray", 9.0)

    response = client.delete(f"/api/rcti/{draft['id']}/lines/{line['id']}")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Line removed successfully"
    rcti = body["rcti"]
    breaks = _break_lines(rcti)
    assert sorted(item["truckType"] for item in breaks) == ["Crane", "Tray"]
    tray_break = next(item for item in breaks if item["truckType"] == "Tray")
    assert tray_break["chargedHours"] == -0.5
    assert tray_break["amountIncGst"] == -42.5
    # 680 + 1100 + 510 - 42.5 - 55
    assert rcti["total"] == 2192.5


def test_removing_last_eligible_line_drops_its_break(client: TestClient, draft: dict) -> None:
    crane = _job_line(draft, "Crane", 10.0)

    response = client.delete(f"/api/rcti/{draft['id']}/lines/{crane['id']}")

    assert response.status_code == 200
    assert [item["truckType"] for item in _break_lines(response.json()["rcti"])] == ["Tray"]


def test_remove_line_rejects_invalid_ids(client: TestClient, draft: dict) -> None:
    response = client.delete(f"/api/rcti/{draft['id']}/lines/-1")

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid RCTI ID or Line ID"


def test_remove_line_reports_missing_records(client: TestClient, draft: dict) -> None:
    missing_rcti = client.delete(f"/api/rcti/999/lines/{draft['lines'][0]['id']}")
    missing_line = client.delete(f"/api/rcti/{draft['id']}/lines/999")

    assert missing_rcti.status_code == 404
    assert missing_rcti.json()["detail"] == "RCTI not found"
    assert missing_line.status_code == 404
    assert missing_line.json()["detail"] == "Line not found"


def test_remove_line_rejects_line_from_another_rcti(
    client: TestClient, draft: dict, seeded: dict[str, int]
) -> None:
    other = client.post(
        "/api/rcti",
        json={"driverId": seeded["driver"], "weekEnding": "2025-01-26"},
    ).json()

    response = client.delete(f"/api/rcti/{draft['id']}/lines/{other['lines'][0]['id']}")

    assert response.status_code == 404
    assert response.json()["detail"] == "Line does not belong to this RCTI"


def test_remove_line_requires_draft(client: TestClient, draft: dict) -> None:
    client.post(f"/api/rcti/{draft['id']}/finalize", json={})

    response = client.delete(f"/api/rcti/{draft['id']}/lines/{draft['lines'][0]['id']}")

    assert response.status_code == 400
    assert response.json()["detail"] == "Can only remove lines from draft RCTIs"


def test_finalize_applies_pending_deductions(
    client: TestClient, draft: dict, seeded: dict[str, int]
) -> None:
    response = client.post(f"/api/rcti/{draft['id']}/finalize")

    assert response.status_code == 200
    rcti = response.json()
    assert rcti["status"] == "finalised"
    assert rcti["finalisedAt"] is not None
    assert rcti["total"] == 2915.0 - 100.0 + 50.0
    assert sorted(
        (item["deductionId"], item["amount"]) for item in rcti["deductionApplications"]
    ) == sorted([(seeded["loan"], 100.0), (seeded["tolls"], 50.0)])
    assert all(isinstance(item["id"], int) for item in rcti["deductionApplications"])

    with session_scope() as session:
        loan = session.get(RctiDeduction, seeded["loan"])
        tolls = session.get(RctiDeduction, seeded["tolls"])
        assert (loan.amount_paid, loan.amount_remaining) == (100.0, 200.0)
        assert tolls.status == "completed"
        assert sum(item.amount for item in loan.applications) == loan.amount_paid


def test_finalize_coerces_numeric_string_override(
    client: TestClient, draft: dict, seeded: dict[str, int]
) -> None:
    response = client.post(
        f"/api/rcti/{draft['id']}/finalize",
        json={
            "deductionOverrides": {
                str(seeded["loan"]): "150.5",
                str(seeded["tolls"]): None,
                "not-an-id": 5,
            }
        },
    )

    assert response.status_code == 200
    rcti = response.json()
    assert [(item["deductionId"], item["amount"]) for item in rcti["deductionApplications"]] == [
        (seeded["loan"], 150.5)
    ]
    assert rcti["total"] == 2915.0 - 150.5

    with session_scope() as session:
        assert session.get(RctiDeduction, seeded["tolls"]).amount_paid == 0.0


@pytest.mark.parametrize("value", ["", "abc", True, {"amount": 5}, [5]])
def test_finalize_rejects_invalid_override_values(
    client: TestClient, draft: dict, seeded: dict[str, int], value: object
) -> None:
    response = client.post(
        f"/api/rcti/{draft['id']}/finalize",
        json={"deductionOverrides": {str(seeded["loan"]): value}},
    )

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert "Invalid deduction override value" in detail
    assert f"deduction {seeded['loan']}" in detail

    assert client.get(f"/api/rcti/{draft['id']}").json()["status"] == "draft"
    assert _application_count() == 0


def test_finalize_accepts_zero_and_negative_overrides(
    client: TestClient, draft: dict, seeded: dict[str, int]
) -> None:
    response = client.post(
        f"/api/rcti/{draft['id']}/finalize",
        json={"deductionOverrides": {str(seeded["loan"]): 0, str(seeded["tolls"]): -10}},
    )

    assert response.status_code == 200
    assert response.json()["deductionApplications"] == []
    assert response.json()["total"] == 2915.0


def test_finalize_twice_is_rejected(client: TestClient, draft: dict) -> None:
    client.post(f"/api/rcti/{draft['id']}/finalize")

    response = client.post(f"/api/rcti/{draft['id']}/finalize")

    assert response.status_code == 400
    assert response.json()["detail"] == "Only draft RCTIs can be finalised"
    assert _application_count() == 2


def test_finalize_rejects_rcti_without_lines(client: TestClient, seeded: dict[str, int]) -> None:
    with session_scope() as session:
        rcti = Rcti(
            driver_id=seeded["driver"],
            week_ending=date(2025, 1, 19),
            invoice_number="RCTI-EMPTY",
            driver_name="Alex Contractor",
            gst_status="not_registered",
            gst_mode="exclusive",
            status="draft",
        )
        session.add(rcti)
        session.flush()
        rcti_id = rcti.id

    response = client.post(f"/api/rcti/{rcti_id}/finalize")

    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot finalise RCTI with no lines"


def test_unfinalize_reverses_applications(
    client: TestClient, draft: dict, seeded: dict[str, int]
) -> None:
    client.post(f"/api/rcti/{draft['id']}/finalize")

    response = client.post(f"/api/rcti/{draft['id']}/unfinalize")

    assert response.status_code == 200
    rcti = response.json()
    assert rcti["status"] == "draft"
    assert rcti["total"] == 2915.0
    assert rcti["deductionApplications"] == []
    with session_scope() as session:
        loan = session.get(RctiDeduction, seeded["loan"])
        tolls = session.get(RctiDeduction, seeded["tolls"])
        assert (loan.amount_paid, loan.amount_remaining) == (0.0, 300.0)
        assert tolls.status == "active"


def test_unfinalize_rejects_draft(client: TestClient, draft: dict) -> None:
    response = client.post(f"/api/rcti/{draft['id']}/unfinalize")

    assert response.status_code == 400
    assert response.json()["detail"] == "RCTI is already in draft status"


def test_paid_rcti_can_only_be_reverted_with_reason(client: TestClient, draft: dict) -> None:
    client.post(f"/api/rcti/{draft['id']}/finalize")
    paid = client.patch(f"/api/rcti/{draft['id']}", json={"status": "paid"})
    assert paid.status_code == 200
    assert paid.json()["paidAt"] is not None

    assert client.post(f"/api/rcti/{draft['id']}/unfinalize").status_code == 400
    assert (
        client.post(f"/api/rcti/{draft['id']}/revert", json={"reason": "oops"}).status_code
        == 400
    )

    response = client.post(
        f"/api/rcti/{draft['id']}/revert",
        json={"reason": "Paid to wrong account"},
    )

    assert response.status_code == 200
    rcti = response.json()
    assert rcti["status"] == "draft"
    assert rcti["paidAt"] is None
    assert rcti["revertedToDraftReason"] == "Paid to wrong account"
    assert rcti["total"] == 2915.0
    assert _application_count() == 0
    with session_scope() as session:
        change = session.query(RctiStatusChange).one()
        assert (change.from_status, change.to_status) == ("paid", "draft")
        assert change.changed_by == "payroll@example.com"


def test_mark_paid_requires_finalised(client: TestClient, draft: dict) -> None:
    response = client.patch(f"/api/rcti/{draft['id']}", json={"status": "paid"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Only finalised RCTIs can be marked as paid"


def test_patch_ignores_null_for_required_fields(client: TestClient, draft: dict) -> None:
    response = client.patch(
        f"/api/rcti/{draft['id']}",
        json={
            "driverName": None,
            "gstStatus": None,
            "businessName": None,
            "notes": "Paid by EFT",
        },
    )

    assert response.status_code == 200, response.text
    rcti = response.json()
    assert rcti["driverName"] == draft["driverName"]
    assert rcti["gstStatus"] == draft["gstStatus"]
    assert rcti["businessName"] is None
    assert rcti["notes"] == "Paid by EFT"
    assert rcti["status"] == "draft"


def test_gst_change_recalculates_draft_lines(client: TestClient, draft: dict) -> None:
    response = client.patch(
        f"/api/rcti/{draft['id']}",
        json={"gstStatus": "registered", "gstMode": "exclusive"},
    )

    assert response.status_code == 200
    rcti = response.json()
    assert rcti["subtotal"] == 2915.0
    assert rcti["gst"] == 291.5
    assert rcti["total"] == 3206.5


def test_manual_line_is_added_without_break(client: TestClient, draft: dict) -> None:
    response = client.post(
        f"/api/rcti/{draft['id']}/lines",
        json={
            "manualLine": {
                "jobDate": "2025-01-17",
                "customer": "Yard work",
                "truckType": "Tray",
                "description": "Yard clean-up",
                "chargedHours": 9,
                "ratePerHour": 40,
            }
        },
    )

    assert response.status_code == 200
    rcti = response.json()
    assert rcti["total"] == 2915.0 + 360.0
    assert len(_break_lines(rcti)) == 2


def test_deleted_draft_frees_jobs(client: TestClient, draft: dict, seeded: dict[str, int]) -> None:
    assert client.delete(f"/api/rcti/{draft['id']}").status_code == 200

    response = client.post(
        "/api/rcti",
        json={"driverId": seeded["driver"], "weekEnding": WEEK_ENDING},
    )

    assert response.status_code == 201


def test_deduction_summary_lists_applications(client: TestClient, draft: dict) -> None:
    client.post(f"/api/rcti/{draft['id']}/finalize")

    response = client.get(f"/api/rcti/{draft['id']}/deductions")

    assert response.status_code == 200
    summary = response.json()
    assert len(summary["applications"]) == 2
    assert summary["totalDeductions"] == 100.0
    assert summary["totalReimbursements"] == 50.0
    assert summary["netAdjustment"] == -50.0


def test_pdf_download(client: TestClient, draft: dict) -> None:
    response = client.get(f"/api/rcti/{draft['id']}/pdf")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert "RCTI-19012025-ALEXCONTR.pdf" in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")


def test_list_filters_by_status(client: TestClient, draft: dict) -> None:
    drafts = client.get("/api/rcti", params={"status": "draft"})
    finalised = client.get("/api/rcti", params={"status": "finalised"})

    assert [item["id"] for item in drafts.json()] == [draft["id"]]
    assert finalised.json() == []
