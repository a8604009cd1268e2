"""Pending calculation and application of ledger deductions to RCTIs."""

from __future__ import annotations

import calendar
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

import structlog
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session, selectinload

from app.backend.src.models import Rcti, RctiDeduction, RctiDeductionApplication
from app.backend.src.services.metrics import (
    deduction_amount_applied_total,
    deduction_applications_total,
)
from app.backend.src.services.rcti_calculations import bankers_round

LOGGER = structlog.get_logger(__name__)

# Remaining balances at or below this are treated as fully paid.
COMPLETION_EPSILON = 0.005


@dataclass(frozen=True, slots=True)
class PendingDeduction:
    id: int
    type: str
    description: str
    frequency: str
    amount_remaining: float
    amount_to_apply: float


@dataclass(frozen=True, slots=True)
class PendingSummary:
    count: int
    total_deductions: float
    total_reimbursements: float
    net_adjustment: float


@dataclass(frozen=True, slots=True)
class AppliedDeduction:
    id: int
    type: str
    description: str
    amount: float


@dataclass(slots=True)
class DeductionApplicationResult:
    """Report returned by :func:`apply_deductions_to_rcti`."""

    applied: list[AppliedDeduction] = field(default_factory=list)
    total_deduction_amount: float = 0.0
    total_reimbursement_amount: float = 0.0

    @property
    def net_adjustment(self) -> float:
        return bankers_round(self.total_reimbursement_amount - self.total_deduction_amount)


@dataclass(frozen=True, slots=True)
class RctiDeductionRecord:
    id: int
    deduction_id: int
    type: str
    description: str
    amount: float
    applied_at: datetime | None


@dataclass(frozen=True, slots=True)
class RctiDeductionSummary:
    applications: list[RctiDeductionRecord]
    total_deductions: float
    total_reimbursements: float
    net_adjustment: float


def _active_deductions(driver_id: int) -> Select:
    return (
        select(RctiDeduction)
        .where(RctiDeduction.driver_id == driver_id, RctiDeduction.status == "active")
        .order_by(RctiDeduction.id.asc())
    )


def scheduled_amount(deduction: RctiDeduction) -> float:
    """Amount the next finalize applies when no override is supplied."""

    remaining = float(deduction.amount_remaining or 0)
    per_cycle = float(deduction.amount_per_cycle or 0)
    if per_cycle <= 0:
        return bankers_round(remaining)
    return bankers_round(min(per_cycle, remaining))


def _add_month(value: date) -> date:
    year, month = (value.year + 1, 1) if value.month == 12 else (value.year, value.month + 1)
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_occurrence(frequency: str, last_week_ending: date) -> date | None:
    """Earliest week ending a recurring entry may be applied to again.

    ``once`` has no next occurrence.
    """

    if frequency == "weekly":
        return last_week_ending + timedelta(days=7)
    if frequency == "fortnightly":
        return last_week_ending + timedelta(days=14)
    if frequency == "monthly":
        return _add_month(last_week_ending)
    return None


def _last_applied_weeks(session: Session, deduction_ids: Iterable[int]) -> dict[int, date]:
    ids = list(deduction_ids)
    if not ids:
        return {}
    rows = session.execute(
        select(RctiDeductionApplication.deduction_id, func.max(Rcti.week_ending))
        .join(Rcti, RctiDeductionApplication.rcti_id == Rcti.id)
        .where(RctiDeductionApplication.deduction_id.in_(ids))
        .group_by(RctiDeductionApplication.deduction_id)
    ).all()
    return {deduction_id: week for deduction_id, week in rows}


def _is_due(
    deduction: RctiDeduction, week_ending: date | None, last_applied: date | None
) -> bool:
    """Whether ``deduction`` is scheduled for the RCTI ending ``week_ending``.

    Entries never applied are always due. A ``once`` entry that has any
    application is never due again, even after a partial amount. Recurring
    entries wait for their next occurrence after the latest RCTI week they
    were applied to. Without a ``week_ending`` only the ``once`` rule holds.
    """

    if last_applied is None:
        return True
    if deduction.frequency == "once":
        return False
    if week_ending is None:
        return True
    upcoming = next_occurrence(deduction.frequency, last_applied)
    return upcoming is not None and week_ending >= upcoming


def _due_deductions(
    session: Session, deductions: Iterable[RctiDeduction], week_ending: date | None
) -> list[RctiDeduction]:
    candidates = list(deductions)
    last_weeks = _last_applied_weeks(session, (deduction.id for deduction in candidates))
    due = []
    for deduction in candidates:
        last_applied = last_weeks.get(deduction.id)
        if _is_due(deduction, week_ending, last_applied):
            due.append(deduction)
        else:
            LOGGER.debug(
                "deduction_not_due",
                deduction_id=deduction.id,
                frequency=deduction.frequency,
                last_applied=str(last_applied),
                week_ending=str(week_ending) if week_ending else None,
            )
    return due


def get_pending_deductions_for_driver(
    session: Session,
    *,
    driver_id: int,
    week_ending: date | None = None,
) -> list[PendingDeduction]:
    """Project what finalizing an RCTI for ``driver_id`` would apply.

    Read-only. Every active entry that is due for ``week_ending`` is
    returned in application order, even when its scheduled amount is zero.
    """

    deductions = _due_deductions(
        session, session.scalars(_active_deductions(driver_id)).all(), week_ending
    )
    return [
        PendingDeduction(
            id=deduction.id,
            type=deduction.type,
            description=deduction.description,
            frequency=deduction.frequency,
            amount_remaining=bankers_round(deduction.amount_remaining),
            amount_to_apply=scheduled_amount(deduction),
        )
        for deduction in deductions
    ]


def summarize_pending(pending: Iterable[PendingDeduction]) -> PendingSummary:
    entries = list(pending)
    deductions = sum(item.amount_to_apply for item in entries if item.type == "deduction")
    reimbursements = sum(
        item.amount_to_apply for item in entries if item.type == "reimbursement"
    )
    return PendingSummary(
        count=len(entries),
        total_deductions=bankers_round(deductions),
        total_reimbursements=bankers_round(reimbursements),
        net_adjustment=bankers_round(reimbursements - deductions),
    )


def _check_overrides(overrides: Mapping[int, float | None]) -> None:
    for deduction_id, value in overrides.items():
        if value is None:
            continue
        if (
            isinstance(value, bool)
            or not isinstance(value, (int, float))
            or not math.isfinite(value)
        ):
            raise ValueError(
                f"Invalid deduction override value for deduction {deduction_id}"
            )


def apply_deductions_to_rcti(
    session: Session,
    *,
    rcti_id: int,
    driver_id: int,
    week_ending: date | None = None,
    amount_overrides: Mapping[int, float | None] | None = None,
) -> DeductionApplicationResult:
    """Consume ledger balances for ``driver_id`` against an RCTI.

    Runs inside the caller's transaction and only flushes. Entries that are
    not due for ``week_ending`` are skipped. An override of ``None`` skips
    the entry; a numeric override is clamped to ``[0, amount_remaining]``.
    Entries whose amount resolves to zero are left untouched.
    """

    overrides = dict(amount_overrides or {})
    _check_overrides(overrides)

    rcti = session.get(Rcti, rcti_id)
    if rcti is None:
        raise ValueError(f"RCTI {rcti_id} not found")

    deductions = _due_deductions(
        session,
        session.scalars(_active_deductions(driver_id).with_for_update()).all(),
        week_ending,
    )
    result = DeductionApplicationResult()
    applied_at = datetime.now(timezone.utc)

    for deduction in deductions:
        remaining = float(deduction.amount_remaining or 0)
        if deduction.id in overrides:
            override = overrides[deduction.id]
            if override is None:
                LOGGER.info(
                    "deduction_skipped_by_override",
                    rcti_id=rcti_id,
                    deduction_id=deduction.id,
                )
                continue
            amount = bankers_round(min(max(float(override), 0.0), remaining))
        else:
            amount = scheduled_amount(deduction)

        if amount <= 0:
            continue

        session.add(
            RctiDeductionApplication(
                deduction=deduction,
                rcti=rcti,
                amount=amount,
                applied_at=applied_at,
            )
        )
        deduction.amount_paid = bankers_round(float(deduction.amount_paid or 0) + amount)
        new_remaining = bankers_round(float(deduction.total_amount) - deduction.amount_paid)
        if new_remaining <= COMPLETION_EPSILON:
            new_remaining = 0.0
            deduction.status = "completed"
            deduction.completed_at = applied_at
        deduction.amount_remaining = new_remaining

        if deduction.type == "reimbursement":
            result.total_reimbursement_amount = bankers_round(
                result.total_reimbursement_amount + amount
            )
        else:
            result.total_deduction_amount = bankers_round(result.total_deduction_amount + amount)
        result.applied.append(
            AppliedDeduction(
                id=deduction.id,
                type=deduction.type,
                description=deduction.description,
                amount=amount,
            )
        )
        deduction_applications_total.labels(type=deduction.type).inc()
        deduction_amount_applied_total.labels(type=deduction.type).inc(amount)

    session.flush()
    LOGGER.info(
        "deductions_applied",
        rcti_id=rcti_id,
        driver_id=driver_id,
        week_ending=str(week_ending) if week_ending else None,
        applied=len(result.applied),
        total_deductions=result.total_deduction_amount,
        total_reimbursements=result.total_reimbursement_amount,
    )
    return result


def remove_deductions_from_rcti(session: Session, rcti: Rcti) -> DeductionApplicationResult:
    """Reverse every application recorded against ``rcti``.

    Balances are restored and completed entries become active again.
    Cancelled entries keep their status.
    """

    applications = session.scalars(
        select(RctiDeductionApplication)
        .options(selectinload(RctiDeductionApplication.deduction))
        .where(RctiDeductionApplication.rcti_id == rcti.id)
        .order_by(RctiDeductionApplication.id.asc())
    ).all()

    reversed_result = DeductionApplicationResult()
    touched: list[RctiDeduction] = []
    for application in applications:
        deduction = application.deduction
        amount = float(application.amount)
        deduction.amount_paid = bankers_round(max(float(deduction.amount_paid) - amount, 0.0))
        deduction.amount_remaining = bankers_round(
            float(deduction.total_amount) - deduction.amount_paid
        )
        if deduction.status == "completed":
            deduction.status = "active"
            deduction.completed_at = None

        if deduction.type == "reimbursement":
            reversed_result.total_reimbursement_amount = bankers_round(
                reversed_result.total_reimbursement_amount + amount
            )
        else:
            reversed_result.total_deduction_amount = bankers_round(
                reversed_result.total_deduction_amount + amount
            )
        reversed_result.applied.append(
            AppliedDeduction(
                id=deduction.id,
                type=deduction.type,
                description=deduction.description,
                amount=amount,
            )
        )
        touched.append(deduction)
        session.delete(application)

    session.flush()
    session.expire(rcti, ["deduction_applications"])
    for deduction in touched:
        session.expire(deduction, ["applications"])

    LOGGER.info(
        "deductions_reversed",
        rcti_id=rcti.id,
        reversed=len(reversed_result.applied),
        total_deductions=reversed_result.total_deduction_amount,
        total_reimbursements=reversed_result.total_reimbursement_amount,
    )
    return reversed_result


def get_rcti_deduction_summary(session: Session, rcti_id: int) -> RctiDeductionSummary:
    """Return the applications persisted against an RCTI with totals."""

    applications = session.scalars(
        select(RctiDeductionApplication)
        .options(selectinload(RctiDeductionApplication.deduction))
        .where(RctiDeductionApplication.rcti_id == rcti_id)
        .order_by(RctiDeductionApplication.id.asc())
    ).all()

    records = [
        RctiDeductionRecord(
            id=application.id,
            deduction_id=application.deduction_id,
            type=application.deduction.type,
            description=application.deduction.description,
            amount=bankers_round(application.amount),
            applied_at=application.applied_at,
        )
        for application in applications
    ]
    deductions = sum(record.amount for record in records if record.type == "deduction")
    reimbursements = sum(
        record.amount for record in records if record.type == "reimbursement"
    )
    return RctiDeductionSummary(
        applications=records,
        total_deductions=bankers_round(deductions),
        total_reimbursements=bankers_round(reimbursements),
        net_adjustment=bankers_round(reimbursements - deductions),
    )


__all__ = [
    "COMPLETION_EPSILON",
    "AppliedDeduction",
    "DeductionApplicationResult",
    "PendingDeduction",
    "PendingSummary",
    "RctiDeductionRecord",
    "RctiDeductionSummary",
    "apply_deductions_to_rcti",
    "get_pending_deductions_for_driver",
    "get_rcti_deduction_summary",
    "next_occurrence",
    "remove_deductions_from_rcti",
    "scheduled_amount",
    "summarize_pending",
]
