"""GST, rounding and break-line calculations for RCTI lines."""

from __future__ import annotations

import re
from collections.abc import Collection, Iterable
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any

GST_RATE = 0.1
BREAK_ELIGIBLE_HOURS = 7.0
BREAK_DESCRIPTION_PREFIX = "Lunch Breaks - "

_CENT = Decimal("0.01")
_NAME_SANITIZER = re.compile(r"[^A-Z0-9]")


def bankers_round(value: float | int | Decimal | None) -> float:
    """Round ``value`` half-to-even at two decimal places."""

    if value is None:
        return 0.0
    quantized = Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_EVEN)
    # Avoid returning -0.0 for tiny negative residues.
    return float(quantized) + 0.0


@dataclass(frozen=True, slots=True)
class LineAmounts:
    amount_ex_gst: float
    gst_amount: float
    amount_inc_gst: float


@dataclass(frozen=True, slots=True)
class RctiTotals:
    subtotal: float
    gst: float
    total: float


@dataclass(frozen=True, slots=True)
class BreakLine:
    """A synthetic negative line covering unpaid meal breaks for one group."""

    truck_type: str
    rate_per_hour: float
    total_break_hours: float
    description: str
    amounts: LineAmounts

    @property
    def charged_hours(self) -> float:
        return -self.total_break_hours


def calculate_line_amounts(
    charged_hours: float,
    rate_per_hour: float,
    gst_status: str,
    gst_mode: str,
) -> LineAmounts:
    """Return ex-GST, GST and inc-GST amounts for ``hours * rate``.

    Drivers that are not GST registered are paid the gross amount with no
    GST. Registered drivers either have 10% added on top (``exclusive``) or
    have the GST component backed out of the gross (``inclusive``).
    """

    gross = bankers_round(float(charged_hours) * float(rate_per_hour))
    if gst_status != "registered":
        return LineAmounts(amount_ex_gst=gross, gst_amount=0.0, amount_inc_gst=gross)

    if gst_mode == "inclusive":
        amount_ex_gst = bankers_round(gross / (1 + GST_RATE))
        return LineAmounts(
            amount_ex_gst=amount_ex_gst,
            gst_amount=bankers_round(gross - amount_ex_gst),
            amount_inc_gst=gross,
        )

    gst_amount = bankers_round(gross * GST_RATE)
    return LineAmounts(
        amount_ex_gst=gross,
        gst_amount=gst_amount,
        amount_inc_gst=bankers_round(gross + gst_amount),
    )


def calculate_rcti_totals(lines: Iterable[Any]) -> RctiTotals:
    """Sum line amounts into RCTI subtotal, GST and total."""

    subtotal = gst = total = 0.0
    for line in lines:
        subtotal += float(line.amount_ex_gst or 0)
        gst += float(line.gst_amount or 0)
        total += float(line.amount_inc_gst or 0)
    return RctiTotals(
        subtotal=bankers_round(subtotal),
        gst=bankers_round(gst),
        total=bankers_round(total),
    )


def generate_invoice_number(
    existing_numbers: Collection[str],
    week_ending: date,
    driver_or_business_name: str | None,
) -> str:
    """Return ``RCTI-DDMMYYYY-NAME`` with a numeric suffix on collision."""

    name_part = _NAME_SANITIZER.sub("", (driver_or_business_name or "")[:10].upper())
    base_number = f"RCTI-{week_ending.strftime('%d%m%Y')}-{name_part}"
    if base_number not in existing_numbers:
        return base_number

    counter = 1
    while f"{base_number}-{counter}" in existing_numbers:
        counter += 1
    return f"{base_number}-{counter}"


def get_driver_rate_for_truck_type(
    truck_type: str,
    *,
    tray: float | None,
    crane: float | None,
    semi: float | None,
    semi_crane: float | None,
) -> float | None:
    """Pick the driver's hourly rate matching a free-text truck type."""

    normalized = (truck_type or "").strip().lower()
    if "semi" in normalized and "crane" in normalized:
        return semi_crane
    if "semi" in normalized:
        return semi
    if "crane" in normalized:
        return crane
    return tray


def calculate_lunch_break_lines(
    lines: Iterable[Any],
    *,
    driver_break_hours: float | None,
    gst_status: str,
    gst_mode: str,
) -> list[BreakLine]:
    """Build break deduction lines for the eligible job lines.

    A line is eligible when it came from a job (``job_id`` set) and its
    charged hours strictly exceed seven. Each eligible line contributes the
    driver's break hours to the group keyed by truck type and rate.
    """

    if not driver_break_hours or driver_break_hours <= 0:
        return []

    groups: dict[tuple[str, float], float] = {}
    for line in lines:
        if line.job_id is None or float(line.charged_hours or 0) <= BREAK_ELIGIBLE_HOURS:
            continue
        key = (line.truck_type, float(line.rate_per_hour or 0))
        groups[key] = groups.get(key, 0.0) + float(driver_break_hours)

    break_lines: list[BreakLine] = []
    for (truck_type, rate), hours in groups.items():
        hours = round(hours, 4)
        break_lines.append(
            BreakLine(
                truck_type=truck_type,
                rate_per_hour=rate,
                total_break_hours=hours,
                description=f"{BREAK_DESCRIPTION_PREFIX}{truck_type}",
                amounts=calculate_line_amounts(-hours, rate, gst_status, gst_mode),
            )
        )
    return break_lines


__all__ = [
    "BREAK_DESCRIPTION_PREFIX",
    "BREAK_ELIGIBLE_HOURS",
    "BreakLine",
    "GST_RATE",
    "LineAmounts",
    "RctiTotals",
    "bankers_round",
    "calculate_line_amounts",
    "calculate_lunch_break_lines",
    "calculate_rcti_totals",
    "generate_invoice_number",
    "get_driver_rate_for_truck_type",
]
