"""Company settings persistence."""

from __future__ import annotations

import structlog
from sqlalchemy.orm import Session

from app.backend.src.models import CompanySettings
from app.backend.src.schemas.company_settings import CompanySettingsUpdate

LOGGER = structlog.get_logger(__name__)


def get_company_settings(session: Session) -> CompanySettings | None:
    return session.query(CompanySettings).order_by(CompanySettings.id.asc()).first()


def save_company_settings(session: Session, payload: CompanySettingsUpdate) -> CompanySettings:
    """Create or replace the singleton settings row."""

    settings = get_company_settings(session)
    if settings is None:
        settings = CompanySettings(**payload.model_dump())
        session.add(settings)
    else:
        for key, value in payload.model_dump().items():
            setattr(settings, key, value)
    session.commit()
    session.refresh(settings)
    LOGGER.info("company_settings_saved", settings_id=settings.id)
    return settings


__all__ = ["get_company_settings", "save_company_settings"]
