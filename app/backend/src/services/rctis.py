"""Service layer functions for the RCTI lifecycle."""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any

import structlog
from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.backend.src.models import Driver, Job, Rcti, RctiLine, RctiStatusChange
from app.backend.src.schemas.rcti import (
    ManualLineInput,
    RctiCreate,
    RctiLineUpdate,
    RctiLinesCreate,
    RctiUpdate,
)
from app.backend.src.services.metrics import rcti_status_transitions_total
from app.backend.src.services.rcti_breaks import recalculate_breaks_and_totals, refresh_totals
from app.backend.src.services.rcti_calculations import (
    bankers_round,
    calculate_line_amounts,
    generate_invoice_number,
    get_driver_rate_for_truck_type,
)
from app.backend.src.services.rcti_deductions import (
    apply_deductions_to_rcti,
    remove_deductions_from_rcti,
)

LOGGER = structlog.get_logger(__name__)

_GST_FIELDS = ("gst_status", "gst_mode")
# Columns that cannot be cleared; a null in the payload leaves them as they are.
_NON_NULLABLE_FIELDS = ("driver_name", "status", *_GST_FIELDS)


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _rcti_query(session: Session):
    return session.query(Rcti).options(
        selectinload(Rcti.lines),
        selectinload(Rcti.deduction_applications),
        selectinload(Rcti.driver),
    )


def get_rcti_or_404(session: Session, rcti_id: int) -> Rcti:
    rcti = _rcti_query(session).filter(Rcti.id == rcti_id).one_or_none()
    if not rcti:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="RCTI not found",
        )
    return rcti


def week_bounds(week_ending: date) -> tuple[date, date]:
    """Return the Monday and Sunday of the week containing ``week_ending``."""

    start = week_ending - timedelta(days=week_ending.weekday())
    return start, start + timedelta(days=6)


def list_rctis(
    session: Session,
    *,
    driver_id: int | None = None,
    status_filter: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Rcti]:
    """Return RCTIs, most recent week first."""

    query = session.query(Rcti)
    if driver_id is not None:
        query = query.filter(Rcti.driver_id == driver_id)
    if status_filter:
        query = query.filter(Rcti.status == status_filter)
    if start_date:
        query = query.filter(Rcti.week_ending >= start_date)
    if end_date:
        query = query.filter(Rcti.week_ending <= end_date)
    return query.order_by(Rcti.week_ending.desc(), Rcti.id.desc()).all()


def _invoiced_job_ids(session: Session, job_ids: list[int] | None = None) -> set[int]:
    query = select(RctiLine.job_id).where(RctiLine.job_id.is_not(None))
    if job_ids is not None:
        query = query.where(RctiLine.job_id.in_(job_ids))
    return set(session.scalars(query).all())


def _line_from_job(job: Job, driver: Driver, gst_status: str, gst_mode: str) -> RctiLine:
    charged_hours = float(job.charged_hours or 0)
    rate = (
        job.driver_charge
        or get_driver_rate_for_truck_type(
            job.truck_type,
            tray=driver.tray,
            crane=driver.crane,
            semi=driver.semi,
            semi_crane=driver.semi_crane,
        )
        or 0.0
    )
    if job.dropoff:
        description = f"{job.pickup or ''} → {job.dropoff}".strip()
    else:
        description = job.job_reference or job.pickup
    amounts = calculate_line_amounts(charged_hours, rate, gst_status, gst_mode)
    return RctiLine(
        job_id=job.id,
        job_date=job.job_date,
        customer=job.customer,
        truck_type=job.truck_type,
        description=description,
        charged_hours=charged_hours,
        rate_per_hour=float(rate),
        amount_ex_gst=amounts.amount_ex_gst,
        gst_amount=amounts.gst_amount,
        amount_inc_gst=amounts.amount_inc_gst,
    )


def _line_from_manual(line: ManualLineInput, gst_status: str, gst_mode: str) -> RctiLine:
    amounts = calculate_line_amounts(
        line.charged_hours, line.rate_per_hour, gst_status, gst_mode
    )
    return RctiLine(
        job_id=None,
        job_date=line.job_date,
        customer=line.customer.strip(),
        truck_type=line.truck_type.strip(),
        description=line.description,
        charged_hours=line.charged_hours,
        rate_per_hour=line.rate_per_hour,
        amount_ex_gst=amounts.amount_ex_gst,
        gst_amount=amounts.gst_amount,
        amount_inc_gst=amounts.amount_inc_gst,
    )


def _recalculate_line(line: RctiLine, gst_status: str, gst_mode: str) -> None:
    amounts = calculate_line_amounts(line.charged_hours, line.rate_per_hour, gst_status, gst_mode)
    line.amount_ex_gst = amounts.amount_ex_gst
    line.gst_amount = amounts.gst_amount
    line.amount_inc_gst = amounts.amount_inc_gst


def _require_draft(rcti: Rcti, detail: str) -> None:
    if not rcti.is_draft:
        raise _bad_request(detail)


def create_rcti(session: Session, payload: RctiCreate) -> Rcti:
    """Create a draft RCTI from the driver's un-invoiced jobs for the week."""

    driver = session.get(Driver, payload.driver_id)
    if not driver:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Driver not found",
        )
    if driver.is_employee:
        raise _bad_request("RCTIs can only be created for contractors and subcontractors")

    week_start, week_end = week_bounds(payload.week_ending)
    jobs = session.scalars(
        select(Job)
        .where(
            Job.driver == driver.driver,
            Job.job_date >= week_start,
            Job.job_date <= week_end,
        )
        .order_by(Job.job_date.asc(), Job.id.asc())
    ).all()
    invoiced = _invoiced_job_ids(session, [job.id for job in jobs])
    eligible = [job for job in jobs if job.id not in invoiced]
    if not eligible:
        raise _bad_request("No eligible jobs found for this driver and week")

    existing_numbers = set(session.scalars(select(Rcti.invoice_number)).all())
    gst_status = driver.gst_status or "not_registered"
    gst_mode = driver.gst_mode or "exclusive"
    rcti = Rcti(
        driver=driver,
        week_ending=payload.week_ending,
        invoice_number=generate_invoice_number(
            existing_numbers,
            payload.week_ending,
            driver.business_name or driver.driver,
        ),
        driver_name=driver.driver,
        business_name=driver.business_name,
        driver_address=driver.address,
        driver_abn=driver.abn,
        gst_status=gst_status,
        gst_mode=gst_mode,
        bank_account_name=driver.bank_account_name,
        bank_bsb=driver.bank_bsb,
        bank_account_number=driver.bank_account_number,
        status="draft",
        notes=payload.notes,
        lines=[_line_from_job(job, driver, gst_status, gst_mode) for job in eligible],
    )
    session.add(rcti)
    session.flush()
    recalculate_breaks_and_totals(session, rcti.id)
    session.commit()
    rcti_status_transitions_total.labels(status="draft").inc()
    LOGGER.info(
        "rcti_created",
        rcti_id=rcti.id,
        driver_id=driver.id,
        invoice_number=rcti.invoice_number,
        lines=len(eligible),
        total=rcti.total,
    )
    return get_rcti_or_404(session, rcti.id)


def update_rcti(session: Session, rcti_id: int, payload: RctiUpdate) -> Rcti:
    """Update RCTI metadata, GST settings (draft only) or mark it paid."""

    rcti = get_rcti_or_404(session, rcti_id)
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key not in _NON_NULLABLE_FIELDS
    }
    new_status = changes.pop("status", None)

    if rcti.status == "paid" and new_status:
        raise _bad_request("Cannot change status of a paid RCTI")
    if new_status == "paid" and rcti.status != "finalised":
        raise _bad_request("Only finalised RCTIs can be marked as paid")

    gst_changes = {
        key: changes.pop(key)
        for key in _GST_FIELDS
        if key in changes and changes[key] != getattr(rcti, key)
    }
    for key in _GST_FIELDS:
        changes.pop(key, None)
    if gst_changes:
        _require_draft(rcti, "GST settings can only be changed on draft RCTIs")

    for key, value in changes.items():
        setattr(rcti, key, value)

    if gst_changes:
        for key, value in gst_changes.items():
            setattr(rcti, key, value)
        for line in rcti.lines:
            if not line.is_break_deduction:
                _recalculate_line(line, rcti.gst_status, rcti.gst_mode)
        recalculate_breaks_and_totals(session, rcti.id)

    if new_status == "paid":
        rcti.status = "paid"
        rcti.paid_at = datetime.now(timezone.utc)

    session.commit()
    if new_status:
        rcti_status_transitions_total.labels(status=new_status).inc()
    LOGGER.info(
        "rcti_updated",
        rcti_id=rcti.id,
        fields=sorted([*changes, *gst_changes]),
        status=rcti.status,
    )
    return get_rcti_or_404(session, rcti.id)


def delete_rcti(session: Session, rcti_id: int) -> None:
    """Delete a draft RCTI and its lines."""

    rcti = get_rcti_or_404(session, rcti_id)
    _require_draft(rcti, "Only draft RCTIs can be deleted")
    session.delete(rcti)
    session.commit()
    LOGGER.info("rcti_deleted", rcti_id=rcti_id)


def add_lines(session: Session, rcti_id: int, payload: RctiLinesCreate) -> Rcti:
    """Attach job lines or one manual line to a draft RCTI."""

    rcti = get_rcti_or_404(session, rcti_id)
    _require_draft(rcti, "Cannot update lines of a finalised or paid RCTI")

    if payload.manual_line is not None:
        rcti.lines.append(_line_from_manual(payload.manual_line, rcti.gst_status, rcti.gst_mode))
        added = 1
    else:
        job_ids = list(dict.fromkeys(payload.job_ids or []))
        jobs = {job.id: job for job in session.scalars(select(Job).where(Job.id.in_(job_ids)))}
        missing = [job_id for job_id in job_ids if job_id not in jobs]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Job {missing[0]} not found",
            )
        invoiced = _invoiced_job_ids(session, job_ids)
        for job_id in job_ids:
            job = jobs[job_id]
            if job.driver != rcti.driver.driver:
                raise _bad_request(f"Job {job_id} does not belong to this driver")
            if job_id in invoiced:
                raise _bad_request(f"Job {job_id} is already on an RCTI")
        for job_id in job_ids:
            rcti.lines.append(
                _line_from_job(jobs[job_id], rcti.driver, rcti.gst_status, rcti.gst_mode)
            )
        added = len(job_ids)

    recalculate_breaks_and_totals(session, rcti.id)
    session.commit()
    LOGGER.info("rcti_lines_added", rcti_id=rcti.id, added=added, total=rcti.total)
    return get_rcti_or_404(session, rcti.id)


def _get_line_or_404(session: Session, rcti: Rcti, line_id: int) -> RctiLine:
    line = session.get(RctiLine, line_id)
    if not line:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Line not found",
        )
    if line.rcti_id != rcti.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Line does not belong to this RCTI",
        )
    return line


def update_line(
    session: Session, rcti_id: int, line_id: int, payload: RctiLineUpdate
) -> Rcti:
    """Edit a draft line and recompute its amounts."""

    rcti = get_rcti_or_404(session, rcti_id)
    _require_draft(rcti, "Cannot update lines of a finalised or paid RCTI")
    line = _get_line_or_404(session, rcti, line_id)
    if line.is_break_deduction:
        raise _bad_request("Break deduction lines are calculated automatically")

    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key == "description"
    }
    for key, value in changes.items():
        setattr(line, key, value)
    _recalculate_line(line, rcti.gst_status, rcti.gst_mode)

    recalculate_breaks_and_totals(session, rcti.id)
    session.commit()
    LOGGER.info("rcti_line_updated", rcti_id=rcti.id, line_id=line_id, fields=sorted(changes))
    return get_rcti_or_404(session, rcti.id)


def remove_line(session: Session, rcti_id: int, line_id: int) -> Rcti:
    """Delete a line from a draft RCTI and regenerate its break lines."""

    if rcti_id <= 0 or line_id <= 0:
        raise _bad_request("Invalid RCTI ID or Line ID")

    rcti = get_rcti_or_404(session, rcti_id)
    _require_draft(rcti, "Can only remove lines from draft RCTIs")
    line = _get_line_or_404(session, rcti, line_id)

    try:
        rcti.lines.remove(line)
        recalculate_breaks_and_totals(session, rcti.id)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        LOGGER.exception("rcti_line_removal_failed", rcti_id=rcti_id, line_id=line_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to remove line",
        ) from exc

    LOGGER.info("rcti_line_removed", rcti_id=rcti_id, line_id=line_id, total=rcti.total)
    return get_rcti_or_404(session, rcti_id)


def _coerce_override(deduction_id: int, value: Any) -> float | None:
    invalid = _bad_request(
        f"Invalid deduction override value for deduction {deduction_id}"
    )
    if value is None:
        return None
    if isinstance(value, bool):
        raise invalid
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise invalid
        try:
            number = float(text)
        except ValueError:
            raise invalid from None
    else:
        raise invalid
    if not math.isfinite(number):
        raise invalid
    return number


def parse_deduction_overrides(raw: Mapping[str, Any] | None) -> dict[int, float | None] | None:
    """Coerce a JSON override map into deduction ids and amounts.

    Keys that are not integers are ignored. ``null`` values mean "skip this
    deduction". Any other value must be a finite number or a numeric string,
    otherwise the whole request is rejected with 400.
    """

    if not raw:
        return None

    overrides: dict[int, float | None] = {}
    for key, value in raw.items():
        try:
            deduction_id = int(str(key).strip())
        except ValueError:
            continue
        overrides[deduction_id] = _coerce_override(deduction_id, value)
    return overrides or None


def finalize_rcti(
    session: Session,
    rcti_id: int,
    raw_overrides: Mapping[str, Any] | None = None,
) -> Rcti:
    """Finalize a draft RCTI and apply the driver's pending deductions.

    The status flip and ledger updates share one transaction; the flip is a
    conditional update so a concurrent finalize of the same RCTI loses.
    """

    rcti = get_rcti_or_404(session, rcti_id)
    _require_draft(rcti, "Only draft RCTIs can be finalised")
    if not rcti.lines:
        raise _bad_request("Cannot finalise RCTI with no lines")

    overrides = parse_deduction_overrides(raw_overrides)

    finalised_at = datetime.now(timezone.utc)
    claimed = session.execute(
        update(Rcti)
        .where(Rcti.id == rcti.id, Rcti.status == "draft")
        .values(status="finalised", finalised_at=finalised_at)
    )
    if claimed.rowcount != 1:
        session.rollback()
        raise _bad_request("Only draft RCTIs can be finalised")

    try:
        result = apply_deductions_to_rcti(
            session,
            rcti_id=rcti.id,
            driver_id=rcti.driver_id,
            week_ending=rcti.week_ending,
            amount_overrides=overrides,
        )
    except ValueError as exc:
        session.rollback()
        raise _bad_request(str(exc)) from exc

    rcti.total = bankers_round(
        float(rcti.total)
        + result.total_reimbursement_amount
        - result.total_deduction_amount
    )
    session.commit()
    rcti_status_transitions_total.labels(status="finalised").inc()
    LOGGER.info(
        "rcti_finalised",
        rcti_id=rcti.id,
        applied=len(result.applied),
        total_deductions=result.total_deduction_amount,
        total_reimbursements=result.total_reimbursement_amount,
        total=rcti.total,
    )
    return get_rcti_or_404(session, rcti.id)


def unfinalize_rcti(session: Session, rcti_id: int) -> Rcti:
    """Return a finalised RCTI to draft, reversing its deductions."""

    rcti = get_rcti_or_404(session, rcti_id)
    if rcti.status == "paid":
        raise _bad_request("Cannot unfinalise a paid RCTI")
    if rcti.is_draft:
        raise _bad_request("RCTI is already in draft status")

    reversed_result = remove_deductions_from_rcti(session, rcti)
    rcti.status = "draft"
    rcti.finalised_at = None
    refresh_totals(rcti)
    session.commit()
    rcti_status_transitions_total.labels(status="draft").inc()
    LOGGER.info(
        "rcti_unfinalised",
        rcti_id=rcti.id,
        reversed=len(reversed_result.applied),
        total=rcti.total,
    )
    return get_rcti_or_404(session, rcti.id)


def revert_rcti(
    session: Session,
    rcti_id: int,
    *,
    reason: str,
    changed_by: str | None = None,
) -> Rcti:
    """Revert a paid RCTI to draft with an audited reason."""

    rcti = get_rcti_or_404(session, rcti_id)
    if rcti.status != "paid":
        raise _bad_request("Only paid RCTIs can be reverted to draft")

    reverted_at = datetime.now(timezone.utc)
    reversed_result = remove_deductions_from_rcti(session, rcti)
    rcti.status_changes.append(
        RctiStatusChange(
            from_status="paid",
            to_status="draft",
            reason=reason,
            changed_by=changed_by,
            changed_at=reverted_at,
        )
    )
    rcti.status = "draft"
    rcti.finalised_at = None
    rcti.paid_at = None
    rcti.reverted_to_draft_at = reverted_at
    rcti.reverted_to_draft_reason = reason
    refresh_totals(rcti)
    session.commit()
    rcti_status_transitions_total.labels(status="draft").inc()
    LOGGER.info(
        "rcti_reverted_to_draft",
        rcti_id=rcti.id,
        changed_by=changed_by,
        reversed=len(reversed_result.applied),
    )
    return get_rcti_or_404(session, rcti.id)


__all__ = [
    "add_lines",
    "create_rcti",
    "delete_rcti",
    "finalize_rcti",
    "get_rcti_or_404",
    "list_rctis",
    "parse_deduction_overrides",
    "remove_line",
    "revert_rcti",
    "unfinalize_rcti",
    "update_line",
    "update_rcti",
    "week_bounds",
]
