"""Job model for logged units of driver work."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Job(Base):
    """A logged job. Jobs are matched to drivers by display name."""

    __tablename__ = "jobs"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_date: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    driver: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    customer: Mapped[str] = mapped_column(String(255), nullable=False)
    bill_to: Mapped[str | None] = mapped_column(String(255), nullable=True)
    truck_type: Mapped[str] = mapped_column(String(64), nullable=False)
    pickup: Mapped[str | None] = mapped_column(String(255), nullable=True)
    dropoff: Mapped[str | None] = mapped_column(String(255), nullable=True)
    job_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    charged_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    driver_charge: Mapped[float | None] = mapped_column(Float, nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


__all__ = ["Job"]
