"""Company settings endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.backend.src.core.permissions import MANAGE_SETTINGS, VIEW_PAYROLL
from app.backend.src.core.security import require_permission
from app.backend.src.db import get_session_dependency
from app.backend.src.models import CompanySettings
from app.backend.src.schemas.company_settings import CompanySettingsRead, CompanySettingsUpdate
from app.backend.src.services import company_settings as settings_service

router = APIRouter(prefix="/rcti-settings", tags=["RCTI Settings"])


@router.get(
    "",
    response_model=CompanySettingsRead,
    dependencies=[Depends(require_permission(VIEW_PAYROLL))],
)
def read_settings(
    session: Annotated[Session, Depends(get_session_dependency)],
) -> CompanySettings:
    settings = settings_service.get_company_settings(session)
    if settings is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="RCTI settings not configured",
        )
    return settings


@router.post(
    "",
    response_model=CompanySettingsRead,
    dependencies=[Depends(require_permission(MANAGE_SETTINGS))],
)
def save_settings(
    payload: CompanySettingsUpdate,
    session: Annotated[Session, Depends(get_session_dependency)],
) -> CompanySettings:
    return settings_service.save_company_settings(session, payload)


__all__ = ["router"]
