"""RCTI header, line and status change models."""

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
    from .deduction import RctiDeductionApplication
    from .driver import Driver

BREAK_DEDUCTION_CUSTOMER = "Break Deduction"
RCTI_STATUSES = ("draft", "finalised", "paid")


class Rcti(Base):
    """A weekly recipient created tax invoice issued to one driver."""

    __tablename__ = "rctis"
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft','finalised','paid')",
            name="ck_rctis_status_valid",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    driver_id: Mapped[int] = mapped_column(
        ForeignKey("drivers.id"), nullable=False, index=True
    )
    week_ending: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    invoice_number: Mapped[str] = mapped_column(
        String(128), unique=True, nullable=False, index=True
    )
    driver_name: Mapped[str] = mapped_column(String(255), nullable=False)
    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    driver_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    driver_abn: Mapped[str | None] = mapped_column(String(32), nullable=True)
    gst_status: Mapped[str] = mapped_column(String(32), nullable=False)
    gst_mode: Mapped[str] = mapped_column(String(32), nullable=False)
    bank_account_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bank_bsb: Mapped[str | None] = mapped_column(String(16), nullable=True)
    bank_account_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="draft", index=True
    )
    subtotal: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    gst: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    finalised_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reverted_to_draft_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reverted_to_draft_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    driver: Mapped["Driver"] = relationship("Driver", back_populates="rctis")
    lines: Mapped[list["RctiLine"]] = relationship(
        "RctiLine",
        back_populates="rcti",
        cascade="all, delete-orphan",
        order_by=lambda: [RctiLine.job_date, RctiLine.id],
    )
    deduction_applications: Mapped[list["RctiDeductionApplication"]] = relationship(
        "RctiDeductionApplication",
        back_populates="rcti",
        order_by="RctiDeductionApplication.id",
    )
    status_changes: Mapped[list["RctiStatusChange"]] = relationship(
        "RctiStatusChange",
        back_populates="rcti",
        cascade="all, delete-orphan",
        order_by="RctiStatusChange.id",
    )

    @property
    def is_draft(self) -> bool:
        return self.status == "draft"


class RctiLine(Base):
    """A billable line on an RCTI; break deductions carry negative hours."""

    __tablename__ = "rcti_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rcti_id: Mapped[int] = mapped_column(
        ForeignKey("rctis.id", ondelete="CASCADE"), nullable=False, index=True
    )
    job_id: Mapped[int | None] = mapped_column(
        ForeignKey("jobs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    job_date: Mapped[date] = mapped_column(Date, nullable=False)
    customer: Mapped[str] = mapped_column(String(255), nullable=False)
    truck_type: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    charged_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    rate_per_hour: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    amount_ex_gst: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    gst_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    amount_inc_gst: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    rcti: Mapped["Rcti"] = relationship("Rcti", back_populates="lines")

    @property
    def is_break_deduction(self) -> bool:
        return self.customer == BREAK_DEDUCTION_CUSTOMER


class RctiStatusChange(Base):
    """Audit record for manual status reversals."""

    __tablename__ = "rcti_status_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rcti_id: Mapped[int] = mapped_column(
        ForeignKey("rctis.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[str] = mapped_column(String(32), nullable=False)
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    changed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    rcti: Mapped["Rcti"] = relationship("Rcti", back_populates="status_changes")


__all__ = [
    "BREAK_DEDUCTION_CUSTOMER",
    "RCTI_STATUSES",
    "Rcti",
    "RctiLine",
    "RctiStatusChange",
]
