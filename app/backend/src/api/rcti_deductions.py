"""Deduction ledger endpoints."""

from __future__ import annotations

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.backend.src.core.permissions import MANAGE_PAYROLL, VIEW_PAYROLL
from app.backend.src.core.security import require_permission
from app.backend.src.db import get_session_dependency
from app.backend.src.models import RctiDeduction
from app.backend.src.schemas.deduction import (
    DeductionCreate,
    DeductionDeleteResponse,
    DeductionRead,
    DeductionStatus,
    DeductionType,
    DeductionUpdate,
    PendingDeductionRead,
    PendingDeductionsResponse,
    PendingSummaryRead,
)
from app.backend.src.services import deduction_ledger
from app.backend.src.services.rcti_deductions import (
    get_pending_deductions_for_driver,
    summarize_pending,
)

router = APIRouter(prefix="/rcti-deductions", tags=["RCTI Deductions"])

require_viewer = require_permission(VIEW_PAYROLL)
require_manager = require_permission(MANAGE_PAYROLL)

SessionDep = Annotated[Session, Depends(get_session_dependency)]


@router.get(
    "",
    response_model=list[DeductionRead],
    dependencies=[Depends(require_viewer)],
)
def list_deductions(
    session: SessionDep,
    driver_id: Annotated[int | None, Query(alias="driverId", gt=0)] = None,
    status_filter: Annotated[DeductionStatus, Query(alias="status")] = "active",
    type_filter: Annotated[DeductionType | None, Query(alias="type")] = None,
) -> list[RctiDeduction]:
    """Return ledger entries, active ones by default."""

    return deduction_ledger.list_deductions(
        session,
        driver_id=driver_id,
        status_filter=status_filter,
        type_filter=type_filter,
    )


@router.post(
    "",
    response_model=DeductionRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_manager)],
)
def create_deduction(payload: DeductionCreate, session: SessionDep) -> RctiDeduction:
    """Create a deduction or reimbursement for a contractor."""

    return deduction_ledger.create_deduction(session, payload)


@router.get(
    "/pending",
    response_model=PendingDeductionsResponse,
    dependencies=[Depends(require_viewer)],
)
def pending_deductions(
    session: SessionDep,
    driver_id: Annotated[int, Query(alias="driverId", gt=0)],
    week_ending: Annotated[date, Query(alias="weekEnding")],
) -> PendingDeductionsResponse:
    """Preview what finalizing the driver's next RCTI would apply."""

    deduction_ledger.get_driver_or_404(session, driver_id)
    pending = get_pending_deductions_for_driver(
        session, driver_id=driver_id, week_ending=week_ending
    )
    summary = summarize_pending(pending)
    return PendingDeductionsResponse(
        pending=[PendingDeductionRead.model_validate(item) for item in pending],
        summary=PendingSummaryRead.model_validate(summary),
    )


@router.get(
    "/{deduction_id}",
    response_model=DeductionRead,
    dependencies=[Depends(require_viewer)],
)
def get_deduction(deduction_id: int, session: SessionDep) -> RctiDeduction:
    return deduction_ledger.get_deduction(session, deduction_id)


@router.patch(
    "/{deduction_id}",
    response_model=DeductionRead,
    dependencies=[Depends(require_manager)],
)
def update_deduction(
    deduction_id: int,
    payload: DeductionUpdate,
    session: SessionDep,
) -> RctiDeduction:
    """Edit a ledger entry; financial terms are locked once applied."""

    return deduction_ledger.update_deduction(session, deduction_id, payload)


@router.delete(
    "/{deduction_id}",
    response_model=DeductionDeleteResponse,
    dependencies=[Depends(require_manager)],
)
def delete_deduction(deduction_id: int, session: SessionDep) -> dict[str, object]:
    """Delete an unapplied entry or cancel an applied one."""

    message, deduction = deduction_ledger.delete_deduction(session, deduction_id)
    return {"message": message, "deduction": deduction}


__all__ = ["router"]
