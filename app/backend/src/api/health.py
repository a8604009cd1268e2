"""Liveness, readiness and Prometheus endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..db import get_session_dependency
from ..services.company_settings import get_company_settings

router = APIRouter(tags=["health"])


@router.get("/health/live")
def liveness() -> dict[str, str]:
    return {"status": "live"}


@router.get("/health/ready")
def readiness(
    session: Annotated[Session, Depends(get_session_dependency)],
) -> dict[str, str]:
    """Ready once the database answers.

    ``rctiSettings`` is informational: PDFs cannot be issued until the
    company details exist, but the API still serves everything else.
    """

    session.execute(text("SELECT 1"))
    configured = get_company_settings(session) is not None
    return {
        "status": "ready",
        "database": "ok",
        "rctiSettings": "configured" if configured else "missing",
    }


@router.get("/metrics")
def metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
