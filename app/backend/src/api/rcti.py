"""RCTI endpoints."""

from __future__ import annotations

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Body, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.backend.src.core.permissions import MANAGE_PAYROLL, VIEW_PAYROLL
from app.backend.src.core.security import require_permission
from app.backend.src.db import get_session_dependency
from app.backend.src.models import Rcti, User
from app.backend.src.schemas.base import MessageResponse
from app.backend.src.schemas.rcti import (
    FinalizeRequest,
    RctiCreate,
    RctiDeductionSummaryRead,
    RctiLineRemovalResponse,
    RctiLineUpdate,
    RctiLinesCreate,
    RctiRead,
    RctiStatus,
    RctiSummary,
    RctiUpdate,
    RevertRequest,
)
from app.backend.src.services import rctis as rcti_service
from app.backend.src.services.rcti_deductions import get_rcti_deduction_summary
from app.backend.src.services.rcti_pdf import build_rcti_pdf

router = APIRouter(prefix="/rcti", tags=["RCTI"])

require_viewer = require_permission(VIEW_PAYROLL)
require_manager = require_permission(MANAGE_PAYROLL)

SessionDep = Annotated[Session, Depends(get_session_dependency)]


@router.get("", response_model=list[RctiSummary], dependencies=[Depends(require_viewer)])
def list_rctis(
    session: SessionDep,
    driver_id: Annotated[int | None, Query(alias="driverId", gt=0)] = None,
    status_filter: Annotated[RctiStatus | None, Query(alias="status")] = None,
    start_date: Annotated[date | None, Query(alias="startDate")] = None,
    end_date: Annotated[date | None, Query(alias="endDate")] = None,
) -> list[Rcti]:
    return rcti_service.list_rctis(
        session,
        driver_id=driver_id,
        status_filter=status_filter,
        start_date=start_date,
        end_date=end_date,
    )


@router.post(
    "",
    response_model=RctiRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_manager)],
)
def create_rcti(payload: RctiCreate, session: SessionDep) -> Rcti:
    """Create a draft RCTI from the driver's jobs for the week."""

    return rcti_service.create_rcti(session, payload)


@router.get("/{rcti_id}", response_model=RctiRead, dependencies=[Depends(require_viewer)])
def get_rcti(rcti_id: int, session: SessionDep) -> Rcti:
    return rcti_service.get_rcti_or_404(session, rcti_id)


@router.patch("/{rcti_id}", response_model=RctiRead, dependencies=[Depends(require_manager)])
def update_rcti(rcti_id: int, payload: RctiUpdate, session: SessionDep) -> Rcti:
    return rcti_service.update_rcti(session, rcti_id, payload)


@router.delete(
    "/{rcti_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_manager)],
)
def delete_rcti(rcti_id: int, session: SessionDep) -> dict[str, str]:
    rcti_service.delete_rcti(session, rcti_id)
    return {"message": "RCTI deleted successfully"}


@router.post(
    "/{rcti_id}/lines",
    response_model=RctiRead,
    dependencies=[Depends(require_manager)],
)
def add_lines(rcti_id: int, payload: RctiLinesCreate, session: SessionDep) -> Rcti:
    return rcti_service.add_lines(session, rcti_id, payload)


@router.patch(
    "/{rcti_id}/lines/{line_id}",
    response_model=RctiRead,
    dependencies=[Depends(require_manager)],
)
def update_line(
    rcti_id: int,
    line_id: int,
    payload: RctiLineUpdate,
    session: SessionDep,
) -> Rcti:
    return rcti_service.update_line(session, rcti_id, line_id, payload)


@router.delete(
    "/{rcti_id}/lines/{line_id}",
    response_model=RctiLineRemovalResponse,
    dependencies=[Depends(require_manager)],
)
def remove_line(rcti_id: int, line_id: int, session: SessionDep) -> dict[str, object]:
    """Remove a line and regenerate the break deduction lines."""

    rcti = rcti_service.remove_line(session, rcti_id, line_id)
    return {"message": "Line removed successfully", "rcti": rcti}


@router.post(
    "/{rcti_id}/finalize",
    response_model=RctiRead,
    dependencies=[Depends(require_manager)],
)
def finalize_rcti(
    rcti_id: int,
    session: SessionDep,
    payload: Annotated[FinalizeRequest | None, Body()] = None,
) -> Rcti:
    """Finalize a draft RCTI, applying pending deductions and reimbursements."""

    overrides = payload.deduction_overrides if payload else None
    return rcti_service.finalize_rcti(session, rcti_id, overrides)


@router.post(
    "/{rcti_id}/unfinalize",
    response_model=RctiRead,
    dependencies=[Depends(require_manager)],
)
def unfinalize_rcti(rcti_id: int, session: SessionDep) -> Rcti:
    return rcti_service.unfinalize_rcti(session, rcti_id)


@router.post("/{rcti_id}/revert", response_model=RctiRead)
def revert_rcti(
    rcti_id: int,
    payload: RevertRequest,
    session: SessionDep,
    user: Annotated[User, Depends(require_manager)],
) -> Rcti:
    """Revert a paid RCTI to draft, recording who did it and why."""

    return rcti_service.revert_rcti(
        session,
        rcti_id,
        reason=payload.reason,
        changed_by=getattr(user, "email", None),
    )


@router.get(
    "/{rcti_id}/deductions",
    response_model=RctiDeductionSummaryRead,
    dependencies=[Depends(require_viewer)],
)
def rcti_deductions(rcti_id: int, session: SessionDep) -> RctiDeductionSummaryRead:
    rcti = rcti_service.get_rcti_or_404(session, rcti_id)
    return RctiDeductionSummaryRead.model_validate(get_rcti_deduction_summary(session, rcti.id))


@router.get("/{rcti_id}/pdf", dependencies=[Depends(require_viewer)])
def download_rcti_pdf(rcti_id: int, session: SessionDep) -> Response:
    """Return the RCTI as a PDF attachment."""

    document = build_rcti_pdf(session, rcti_id)
    return Response(
        content=document.content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'},
    )


__all__ = ["router"]
