"""Minimal RCTI PDF rendering."""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from time import perf_counter

from fastapi import HTTPException, status
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas
from sqlalchemy.orm import Session

from app.backend.src.models import CompanySettings, Rcti
from app.backend.src.services.metrics import pdf_generation_seconds
from app.backend.src.services.rcti_calculations import bankers_round
from app.backend.src.services.rcti_deductions import (
    get_pending_deductions_for_driver,
    get_rcti_deduction_summary,
    summarize_pending,
)
from app.backend.src.services.rctis import get_rcti_or_404


@dataclass(frozen=True, slots=True)
class Adjustment:
    type: str
    description: str
    amount: float


@dataclass(frozen=True, slots=True)
class RctiPdf:
    filename: str
    content: bytes


def _money(value: float) -> str:
    return f"${value:,.2f}"


def render_rcti_pdf(
    rcti: Rcti,
    company: CompanySettings,
    adjustments: list[Adjustment],
    *,
    amount_payable: float,
) -> bytes:
    """Draw the RCTI header, lines, adjustments and totals onto A4 pages."""

    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    margin = 50
    muted = HexColor("#64748B")
    y = height - margin

    def new_page_if_needed(current: float) -> float:
        if current > margin + 40:
            return current
        pdf.showPage()
        pdf.setFont("Helvetica", 9)
        return height - margin

    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(margin, y, "Recipient Created Tax Invoice")
    pdf.setFont("Helvetica", 10)
    pdf.drawRightString(width - margin, y, rcti.invoice_number)
    y -= 24

    pdf.setFont("Helvetica-Bold", 10)
    pdf.drawString(margin, y, company.company_name)
    pdf.drawString(width / 2, y, rcti.business_name or rcti.driver_name)
    pdf.setFont("Helvetica", 9)
    pdf.setFillColor(muted)
    left = [company.company_abn and f"ABN {company.company_abn}", company.company_address]
    right = [rcti.driver_abn and f"ABN {rcti.driver_abn}", rcti.driver_address]
    for row in range(2):
        y -= 12
        if left[row]:
            pdf.drawString(margin, y, left[row])
        if right[row]:
            pdf.drawString(width / 2, y, right[row])
    y -= 16
    pdf.drawString(margin, y, f"Week ending {rcti.week_ending.strftime('%d/%m/%Y')}")
    pdf.drawRightString(width - margin, y, f"Status: {rcti.status}")
    pdf.setFillColor(HexColor("#000000"))
    y -= 24

    pdf.setFont("Helvetica-Bold", 9)
    columns = (margin, margin + 60, margin + 170, margin + 260, margin + 330, margin + 390)
    for x, title in zip(columns, ("Date", "Customer", "Truck", "Hours", "Rate", "Amount")):
        pdf.drawString(x, y, title)
    pdf.setFont("Helvetica", 9)
    for line in rcti.lines:
        y = new_page_if_needed(y - 14)
        pdf.drawString(columns[0], y, line.job_date.strftime("%d/%m/%y"))
        pdf.drawString(columns[1], y, line.customer[:20])
        pdf.drawString(columns[2], y, line.truck_type[:14])
        pdf.drawString(columns[3], y, f"{line.charged_hours:.2f}")
        pdf.drawString(columns[4], y, _money(line.rate_per_hour))
        pdf.drawString(columns[5], y, _money(line.amount_inc_gst))

    y = new_page_if_needed(y - 24)
    for label, value in (
        ("Subtotal", rcti.subtotal),
        ("GST", rcti.gst),
        ("Total", bankers_round(rcti.subtotal + rcti.gst)),
    ):
        pdf.drawString(columns[4], y, label)
        pdf.drawRightString(width - margin, y, _money(value))
        y -= 12

    if adjustments:
        y = new_page_if_needed(y - 12)
        pdf.setFont("Helvetica-Bold", 9)
        pdf.drawString(margin, y, "Deductions and reimbursements")
        pdf.setFont("Helvetica", 9)
        for adjustment in adjustments:
            y = new_page_if_needed(y - 12)
            sign = "-" if adjustment.type == "deduction" else "+"
            pdf.drawString(margin, y, adjustment.description[:70])
            pdf.drawRightString(width - margin, y, f"{sign}{_money(adjustment.amount)}")

    y = new_page_if_needed(y - 20)
    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(columns[4], y, "Amount payable")
    pdf.drawRightString(width - margin, y, _money(amount_payable))

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def build_rcti_pdf(session: Session, rcti_id: int) -> RctiPdf:
    """Render an RCTI, previewing pending deductions while it is a draft."""

    rcti = get_rcti_or_404(session, rcti_id)
    company = session.query(CompanySettings).order_by(CompanySettings.id.asc()).first()
    if company is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="RCTI settings not configured",
        )

    if rcti.is_draft:
        pending = [
            item
            for item in get_pending_deductions_for_driver(
                session, driver_id=rcti.driver_id, week_ending=rcti.week_ending
            )
            if item.amount_to_apply > 0
        ]
        adjustments = [
            Adjustment(item.type, item.description, item.amount_to_apply) for item in pending
        ]
        amount_payable = bankers_round(rcti.total + summarize_pending(pending).net_adjustment)
    else:
        summary = get_rcti_deduction_summary(session, rcti.id)
        adjustments = [
            Adjustment(record.type, record.description, record.amount)
            for record in summary.applications
        ]
        amount_payable = rcti.total

    start = perf_counter()
    content = render_rcti_pdf(rcti, company, adjustments, amount_payable=amount_payable)
    pdf_generation_seconds.observe(perf_counter() - start)
    return RctiPdf(filename=f"{rcti.invoice_number}.pdf", content=content)


__all__ = ["Adjustment", "RctiPdf", "build_rcti_pdf", "render_rcti_pdf"]
