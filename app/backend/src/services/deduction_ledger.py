"""Service layer functions for the driver deduction ledger."""

from __future__ import annotations

from datetime import date

import structlog
from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload

from app.backend.src.models import Driver, RctiDeduction, RctiDeductionApplication
from app.backend.src.schemas.deduction import DeductionCreate, DeductionUpdate
from app.backend.src.services.rcti_calculations import bankers_round
from app.backend.src.services.rcti_deductions import COMPLETION_EPSILON

LOGGER = structlog.get_logger(__name__)

_FINANCIAL_FIELDS = ("total_amount", "frequency", "amount_per_cycle")


def _deduction_query(session: Session):
    return session.query(RctiDeduction).options(
        selectinload(RctiDeduction.driver),
        selectinload(RctiDeduction.applications).selectinload(
            RctiDeductionApplication.rcti
        ),
    )


def _get_deduction_or_404(session: Session, deduction_id: int) -> RctiDeduction:
    deduction = _deduction_query(session).filter(RctiDeduction.id == deduction_id).one_or_none()
    if not deduction:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Deduction not found",
        )
    return deduction


def get_driver_or_404(session: Session, driver_id: int) -> Driver:
    driver = session.get(Driver, driver_id)
    if not driver:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Driver not found",
        )
    return driver


def list_deductions(
    session: Session,
    *,
    driver_id: int | None = None,
    status_filter: str = "active",
    type_filter: str | None = None,
) -> list[RctiDeduction]:
    """Return ledger entries ordered by status then most recent start date."""

    query = _deduction_query(session).filter(RctiDeduction.status == status_filter)
    if driver_id is not None:
        query = query.filter(RctiDeduction.driver_id == driver_id)
    if type_filter:
        query = query.filter(RctiDeduction.type == type_filter)
    return query.order_by(
        RctiDeduction.status.asc(),
        RctiDeduction.start_date.desc(),
        RctiDeduction.id.desc(),
    ).all()


def get_deduction(session: Session, deduction_id: int) -> RctiDeduction:
    """Return a single ledger entry with its applications."""

    return _get_deduction_or_404(session, deduction_id)


def create_deduction(session: Session, payload: DeductionCreate) -> RctiDeduction:
    """Create an active ledger entry for a contractor or subcontractor."""

    driver = get_driver_or_404(session, payload.driver_id)
    if driver.is_employee:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Deductions only apply to contractors and subcontractors",
        )

    total_amount = bankers_round(payload.total_amount)
    if payload.frequency == "once":
        amount_per_cycle = total_amount
    else:
        amount_per_cycle = bankers_round(payload.amount_per_cycle)

    deduction = RctiDeduction(
        driver_id=driver.id,
        type=payload.type,
        description=payload.description,
        total_amount=total_amount,
        amount_paid=0.0,
        amount_remaining=total_amount,
        frequency=payload.frequency,
        amount_per_cycle=amount_per_cycle,
        status="active",
        start_date=payload.start_date or date.today(),
        notes=payload.notes,
    )
    session.add(deduction)
    session.commit()
    LOGGER.info(
        "deduction_created",
        deduction_id=deduction.id,
        driver_id=driver.id,
        type=deduction.type,
        total_amount=total_amount,
        frequency=deduction.frequency,
    )
    return _get_deduction_or_404(session, deduction.id)


def _changed_financial_fields(
    deduction: RctiDeduction, changes: dict[str, object]
) -> dict[str, object]:
    changed: dict[str, object] = {}
    for field_name in _FINANCIAL_FIELDS:
        if field_name not in changes:
            continue
        value = changes[field_name]
        current = getattr(deduction, field_name)
        if isinstance(value, float):
            value = bankers_round(value)
            if current is not None and abs(float(current) - value) < COMPLETION_EPSILON:
                continue
        elif value == current:
            continue
        changed[field_name] = value
    return changed


def update_deduction(
    session: Session, deduction_id: int, payload: DeductionUpdate
) -> RctiDeduction:
    """Apply a partial update.

    Once an entry has been applied to any RCTI its total, frequency and
    amount per cycle are fixed. Resubmitting the current values is allowed.
    """

    deduction = _get_deduction_or_404(session, deduction_id)
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key == "notes"
    }

    financial = _changed_financial_fields(deduction, changes)
    if financial and deduction.applications:
        if "total_amount" in financial:
            detail = "Cannot change total amount after deduction has been applied"
        else:
            detail = "Cannot change frequency or amount per cycle after deduction has been applied"
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

    for key in ("description", "start_date", "notes"):
        if key in changes:
            setattr(deduction, key, changes[key])

    if financial:
        frequency = financial.get("frequency", deduction.frequency)
        total_amount = financial.get("total_amount", deduction.total_amount)
        if frequency == "once":
            amount_per_cycle = total_amount
        else:
            amount_per_cycle = financial.get("amount_per_cycle", deduction.amount_per_cycle)
            if deduction.frequency == "once" and "amount_per_cycle" not in financial:
                amount_per_cycle = None
        if frequency != "once" and not amount_per_cycle:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Amount per cycle is required for recurring deductions",
            )

        deduction.frequency = frequency
        deduction.amount_per_cycle = amount_per_cycle
        if "total_amount" in financial:
            deduction.total_amount = total_amount
            deduction.amount_remaining = bankers_round(
                float(total_amount) - float(deduction.amount_paid or 0)
            )

    session.add(deduction)
    session.commit()
    LOGGER.info(
        "deduction_updated",
        deduction_id=deduction.id,
        fields=sorted(changes),
    )
    return _get_deduction_or_404(session, deduction.id)


def delete_deduction(session: Session, deduction_id: int) -> tuple[str, RctiDeduction | None]:
    """Hard delete an unapplied entry, otherwise cancel it."""

    deduction = _get_deduction_or_404(session, deduction_id)
    if deduction.applications:
        deduction.status = "cancelled"
        session.add(deduction)
        session.commit()
        LOGGER.info("deduction_cancelled", deduction_id=deduction.id)
        return "Deduction cancelled", _get_deduction_or_404(session, deduction.id)

    session.delete(deduction)
    session.commit()
    LOGGER.info("deduction_deleted", deduction_id=deduction_id)
    return "Deduction deleted successfully", None


__all__ = [
    "create_deduction",
    "delete_deduction",
    "get_deduction",
    "get_driver_or_404",
    "list_deductions",
    "update_deduction",
]
