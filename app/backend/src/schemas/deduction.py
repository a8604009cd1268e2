"""Deduction ledger schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import Field, field_validator, model_validator

from .base import ApiModel

DeductionType = Literal["deduction", "reimbursement"]
DeductionFrequency = Literal["once", "weekly", "fortnightly", "monthly"]
DeductionStatus = Literal["active", "completed", "cancelled"]


def _clean_description(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("Description is required")
    return cleaned


class DeductionCreate(ApiModel):
    """Payload for creating a ledger entry."""

    driver_id: int = Field(gt=0)
    type: DeductionType
    description: str = Field(max_length=500)
    total_amount: float = Field(gt=0, allow_inf_nan=False)
    frequency: DeductionFrequency
    amount_per_cycle: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    start_date: date | None = None
    notes: str | None = Field(default=None, max_length=2000)

    @field_validator("description")
    @classmethod
    def strip_description(cls, value: str | None) -> str | None:
        return _clean_description(value)

    @model_validator(mode="after")
    def require_cycle_amount(self) -> "DeductionCreate":
        if self.frequency != "once" and self.amount_per_cycle is None:
            raise ValueError("Amount per cycle is required for recurring deductions")
        return self


class DeductionUpdate(ApiModel):
    """Partial update of a ledger entry. Only supplied fields are applied."""

    description: str | None = Field(default=None, max_length=500)
    total_amount: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    frequency: DeductionFrequency | None = None
    amount_per_cycle: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    start_date: date | None = None
    notes: str | None = Field(default=None, max_length=2000)

    @field_validator("description")
    @classmethod
    def strip_description(cls, value: str | None) -> str | None:
        return _clean_description(value)


class DeductionApplicationRead(ApiModel):
    id: int
    rcti_id: int
    amount: float
    applied_at: datetime | None
    invoice_number: str | None = None
    week_ending: date | None = None


class DeductionRead(ApiModel):
    """Serialized ledger entry with its application history."""

    id: int
    driver_id: int
    driver_name: str | None = None
    type: DeductionType
    description: str
    total_amount: float
    amount_paid: float
    amount_remaining: float
    frequency: DeductionFrequency
    amount_per_cycle: float | None
    status: DeductionStatus
    start_date: date
    completed_at: datetime | None
    notes: str | None
    created_at: datetime | None
    applications: list[DeductionApplicationRead] = []


class DeductionDeleteResponse(ApiModel):
    message: str
    deduction: DeductionRead | None = None


class PendingDeductionRead(ApiModel):
    id: int
    type: DeductionType
    description: str
    frequency: DeductionFrequency
    amount_remaining: float
    amount_to_apply: float


class PendingSummaryRead(ApiModel):
    count: int
    total_deductions: float
    total_reimbursements: float
    net_adjustment: float


class PendingDeductionsResponse(ApiModel):
    pending: list[PendingDeductionRead]
    summary: PendingSummaryRead


__all__ = [
    "DeductionApplicationRead",
    "DeductionCreate",
    "DeductionDeleteResponse",
    "DeductionFrequency",
    "DeductionRead",
    "DeductionStatus",
    "DeductionType",
    "DeductionUpdate",
    "PendingDeductionRead",
    "PendingDeductionsResponse",
    "PendingSummaryRead",
]
