"""Prometheus metric definitions for RCTI processing."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

rcti_status_transitions_total = Counter(
    "rcti_status_transitions_total",
    "RCTI status transitions by target status.",
    labelnames=["status"],
)

deduction_applications_total = Counter(
    "rcti_deduction_applications_total",
    "Deduction ledger entries applied to finalised RCTIs.",
    labelnames=["type"],
)

deduction_amount_applied_total = Counter(
    "rcti_deduction_amount_applied_total",
    "Dollar amount applied from the deduction ledger.",
    labelnames=["type"],
)

break_recalculations_total = Counter(
    "rcti_break_recalculations_total",
    "Break line recalculations performed on draft RCTIs.",
)

pdf_generation_seconds = Histogram(
    "rcti_pdf_generation_seconds",
    "Time spent rendering a single RCTI PDF.",
)

__all__ = [
    "break_recalculations_total",
    "deduction_amount_applied_total",
    "deduction_applications_total",
    "pdf_generation_seconds",
    "rcti_status_transitions_total",
]
