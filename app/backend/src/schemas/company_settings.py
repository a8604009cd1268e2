"""Company settings schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import EmailStr, Field

from .base import ApiModel


class CompanySettingsUpdate(ApiModel):
    company_name: str = Field(min_length=1, max_length=255)
    company_abn: str | None = Field(default=None, max_length=32)
    company_address: str | None = None
    company_phone: str | None = Field(default=None, max_length=64)
    company_email: EmailStr | None = None


class CompanySettingsRead(CompanySettingsUpdate):
    id: int
    updated_at: datetime | None = None
