"""RCTI schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator

from .base import ApiModel

RctiStatus = Literal["draft", "finalised", "paid"]
GstStatus = Literal["registered", "not_registered"]
GstMode = Literal["exclusive", "inclusive"]


class RctiLineRead(ApiModel):
    id: int
    rcti_id: int
    job_id: int | None
    job_date: date
    customer: str
    truck_type: str
    description: str | None
    charged_hours: float
    rate_per_hour: float
    amount_ex_gst: float
    gst_amount: float
    amount_inc_gst: float


class RctiApplicationRead(ApiModel):
    id: int
    deduction_id: int
    amount: float
    applied_at: datetime | None


class RctiSummary(ApiModel):
    """Compact RCTI representation used in listings."""

    id: int
    driver_id: int
    driver_name: str
    business_name: str | None
    week_ending: date
    invoice_number: str
    status: RctiStatus
    subtotal: float
    gst: float
    total: float
    created_at: datetime | None


class RctiRead(RctiSummary):
    """Full RCTI including lines and applied deductions."""

    driver_address: str | None
    driver_abn: str | None
    gst_status: GstStatus
    gst_mode: GstMode
    bank_account_name: str | None
    bank_bsb: str | None
    bank_account_number: str | None
    notes: str | None
    finalised_at: datetime | None
    paid_at: datetime | None
    reverted_to_draft_at: datetime | None
    reverted_to_draft_reason: str | None
    lines: list[RctiLineRead] = []
    deduction_applications: list[RctiApplicationRead] = []


class RctiCreate(ApiModel):
    driver_id: int = Field(gt=0)
    week_ending: date
    notes: str | None = Field(default=None, max_length=2000)


class RctiUpdate(ApiModel):
    """Metadata changes. GST changes are only accepted while draft."""

    driver_name: str | None = Field(default=None, min_length=1, max_length=255)
    business_name: str | None = Field(default=None, max_length=255)
    driver_address: str | None = None
    driver_abn: str | None = Field(default=None, max_length=32)
    gst_status: GstStatus | None = None
    gst_mode: GstMode | None = None
    bank_account_name: str | None = Field(default=None, max_length=255)
    bank_bsb: str | None = Field(default=None, max_length=16)
    bank_account_number: str | None = Field(default=None, max_length=32)
    notes: str | None = Field(default=None, max_length=2000)
    status: Literal["paid"] | None = None


class ManualLineInput(ApiModel):
    job_date: date
    customer: str = Field(min_length=1, max_length=255)
    truck_type: str = Field(min_length=1, max_length=64)
    description: str | None = None
    charged_hours: float = Field(allow_inf_nan=False)
    rate_per_hour: float = Field(ge=0, allow_inf_nan=False)


class RctiLinesCreate(ApiModel):
    """Add lines from un-invoiced jobs, or a single manual line."""

    job_ids: list[int] | None = None
    manual_line: ManualLineInput | None = None

    @model_validator(mode="after")
    def exactly_one_source(self) -> "RctiLinesCreate":
        if bool(self.job_ids) == bool(self.manual_line):
            raise ValueError("Provide either jobIds or manualLine")
        return self


class RctiLineUpdate(ApiModel):
    job_date: date | None = None
    customer: str | None = Field(default=None, min_length=1, max_length=255)
    truck_type: str | None = Field(default=None, min_length=1, max_length=64)
    description: str | None = None
    charged_hours: float | None = Field(default=None, allow_inf_nan=False)
    rate_per_hour: float | None = Field(default=None, ge=0, allow_inf_nan=False)


class FinalizeRequest(ApiModel):
    """Raw override map; values are coerced by the finalize service."""

    deduction_overrides: dict[str, Any] | None = None


class RevertRequest(ApiModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_is_descriptive(cls, value: str) -> str:
        cleaned = value.strip()
        if len(cleaned) < 5:
            raise ValueError("Reason must be at least 5 characters")
        return cleaned


class RctiLineRemovalResponse(ApiModel):
    message: str
    rcti: RctiRead


class RctiDeductionRecordRead(ApiModel):
    id: int
    deduction_id: int
    type: str
    description: str
    amount: float
    applied_at: datetime | None


class RctiDeductionSummaryRead(ApiModel):
    applications: list[RctiDeductionRecordRead]
    total_deductions: float
    total_reimbursements: float
    net_adjustment: float


__all__ = [
    "FinalizeRequest",
    "GstMode",
    "GstStatus",
    "ManualLineInput",
    "RctiApplicationRead",
    "RctiCreate",
    "RctiDeductionRecordRead",
    "RctiDeductionSummaryRead",
    "RctiLineRead",
    "RctiLineRemovalResponse",
    "RctiLineUpdate",
    "RctiLinesCreate",
    "RctiRead",
    "RctiStatus",
    "RctiSummary",
    "RctiUpdate",
    "RevertRequest",
]
