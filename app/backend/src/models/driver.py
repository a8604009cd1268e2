"""Driver model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .deduction import RctiDeduction
    from .rcti import Rcti

EMPLOYEE = "Employee"
DRIVER_TYPES = ("Employee", "Contractor", "Subcontractor")


class Driver(Base):
    """A driver who works jobs and, unless an employee, is paid by RCTI."""

    __tablename__ = "drivers"
    __table_args__ = (
        CheckConstraint(
            "type IN ('Employee','Contractor','Subcontractor')",
            name="ck_drivers_type_valid",
        ),
        CheckConstraint(
            "gst_status IN ('registered','not_registered')",
            name="ck_drivers_gst_status_valid",
        ),
        CheckConstraint(
            "gst_mode IN ('exclusive','inclusive')",
            name="ck_drivers_gst_mode_valid",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    driver: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="Contractor")
    truck: Mapped[str | None] = mapped_column(String(64), nullable=True)
    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    abn: Mapped[str | None] = mapped_column(String(32), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    gst_status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="not_registered"
    )
    gst_mode: Mapped[str] = mapped_column(String(32), nullable=False, default="exclusive")
    breaks: Mapped[float | None] = mapped_column(Float, nullable=True)
    tray: Mapped[float | None] = mapped_column(Float, nullable=True)
    crane: Mapped[float | None] = mapped_column(Float, nullable=True)
    semi: Mapped[float | None] = mapped_column(Float, nullable=True)
    semi_crane: Mapped[float | None] = mapped_column(Float, nullable=True)
    bank_account_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bank_bsb: Mapped[str | None] = mapped_column(String(16), nullable=True)
    bank_account_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    rctis: Mapped[list["Rcti"]] = relationship("Rcti", back_populates="driver")
    deductions: Mapped[list["RctiDeduction"]] = relationship(
        "RctiDeduction", back_populates="driver"
    )

    @property
    def is_employee(self) -> bool:
        return self.type == EMPLOYEE


__all__ = ["DRIVER_TYPES", "Driver", "EMPLOYEE"]
