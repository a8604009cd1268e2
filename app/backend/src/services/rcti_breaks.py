"""Keep the synthetic break deduction lines and RCTI totals in sync."""

from __future__ import annotations

import structlog
from sqlalchemy.orm import Session, selectinload

from app.backend.src.models import Rcti, RctiLine
from app.backend.src.models.rcti import BREAK_DEDUCTION_CUSTOMER
from app.backend.src.services.metrics import break_recalculations_total
from app.backend.src.services.rcti_calculations import (
    calculate_lunch_break_lines,
    calculate_rcti_totals,
)

LOGGER = structlog.get_logger(__name__)


def refresh_totals(rcti: Rcti) -> Rcti:
    """Set ``subtotal``, ``gst`` and ``total`` to the sums of the lines."""

    totals = calculate_rcti_totals(rcti.lines)
    rcti.subtotal = totals.subtotal
    rcti.gst = totals.gst
    rcti.total = totals.total
    return rcti


def recalculate_breaks_and_totals(session: Session, rcti_id: int) -> Rcti:
    """Regenerate break lines for a draft RCTI and recompute its totals.

    Existing break lines are dropped first, so calling this repeatedly
    yields the same lines. The caller owns the transaction.
    """

    rcti = (
        session.query(Rcti)
        .options(selectinload(Rcti.lines), selectinload(Rcti.driver))
        .filter(Rcti.id == rcti_id)
        .one_or_none()
    )
    if rcti is None:
        raise ValueError(f"RCTI {rcti_id} not found")

    for line in [line for line in rcti.lines if line.is_break_deduction]:
        rcti.lines.remove(line)

    break_lines = calculate_lunch_break_lines(
        rcti.lines,
        driver_break_hours=rcti.driver.breaks if rcti.driver else None,
        gst_status=rcti.gst_status,
        gst_mode=rcti.gst_mode,
    )
    for break_line in break_lines:
        rcti.lines.append(
            RctiLine(
                job_id=None,
                job_date=rcti.week_ending,
                customer=BREAK_DEDUCTION_CUSTOMER,
                truck_type=break_line.truck_type,
                description=break_line.description,
                charged_hours=break_line.charged_hours,
                rate_per_hour=break_line.rate_per_hour,
                amount_ex_gst=break_line.amounts.amount_ex_gst,
                gst_amount=break_line.amounts.gst_amount,
                amount_inc_gst=break_line.amounts.amount_inc_gst,
            )
        )

    refresh_totals(rcti)
    session.flush()
    break_recalculations_total.inc()
    LOGGER.info(
        "rcti_breaks_recalculated",
        rcti_id=rcti.id,
        break_lines=len(break_lines),
        subtotal=rcti.subtotal,
        gst=rcti.gst,
        total=rcti.total,
    )
    return rcti


__all__ = ["recalculate_breaks_and_totals", "refresh_totals"]
