"""Deduction ledger and application audit models."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .driver import Driver
    from .rcti import Rcti

DEDUCTION_TYPES = ("deduction", "reimbursement")
DEDUCTION_FREQUENCIES = ("once", "weekly", "fortnightly", "monthly")
DEDUCTION_STATUSES = ("active", "completed", "cancelled")


class RctiDeduction(Base):
    """A scheduled amount withheld from (or added to) a driver's RCTIs."""

    __tablename__ = "rcti_deductions"
    __table_args__ = (
        CheckConstraint(
            "type IN ('deduction','reimbursement')",
            name="ck_rcti_deductions_type_valid",
        ),
        CheckConstraint(
            "frequency IN ('once','weekly','fortnightly','monthly')",
            name="ck_rcti_deductions_frequency_valid",
        ),
        CheckConstraint(
            "status IN ('active','completed','cancelled')",
            name="ck_rcti_deductions_status_valid",
        ),
        CheckConstraint("total_amount > 0", name="ck_rcti_deductions_total_positive"),
        CheckConstraint("amount_paid >= 0", name="ck_rcti_deductions_paid_non_negative"),
        CheckConstraint(
            "amount_remaining >= 0", name="ck_rcti_deductions_remaining_non_negative"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    driver_id: Mapped[int] = mapped_column(
        ForeignKey("drivers.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    amount_paid: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    amount_remaining: Mapped[float] = mapped_column(Float, nullable=False)
    frequency: Mapped[str] = mapped_column(String(32), nullable=False)
    amount_per_cycle: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="active", index=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    driver: Mapped["Driver"] = relationship("Driver", back_populates="deductions")
    applications: Mapped[list["RctiDeductionApplication"]] = relationship(
        "RctiDeductionApplication",
        back_populates="deduction",
        cascade="all, delete-orphan",
        order_by="RctiDeductionApplication.id",
    )

    @property
    def driver_name(self) -> str | None:
        return self.driver.driver if self.driver else None


class RctiDeductionApplication(Base):
    """Audit row recording an amount applied to a finalised RCTI."""

    __tablename__ = "rcti_deduction_applications"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_rcti_deduction_applications_amount_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deduction_id: Mapped[int] = mapped_column(
        ForeignKey("rcti_deductions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rcti_id: Mapped[int] = mapped_column(
        ForeignKey("rctis.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    deduction: Mapped["RctiDeduction"] = relationship(
        "RctiDeduction", back_populates="applications"
    )
    rcti: Mapped["Rcti"] = relationship("Rcti", back_populates="deduction_applications")

    @property
    def invoice_number(self) -> str | None:
        return self.rcti.invoice_number if self.rcti else None

    @property
    def week_ending(self) -> date | None:
        return self.rcti.week_ending if self.rcti else None


__all__ = [
    "DEDUCTION_FREQUENCIES",
    "DEDUCTION_STATUSES",
    "DEDUCTION_TYPES",
    "RctiDeduction",
    "RctiDeductionApplication",
]
