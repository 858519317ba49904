# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from hris_leave.models.base import TimestampMixin, UUIDBase
from hris_leave.models.enums import AccrualMethod, DeductionType


class LeaveCategory(UUIDBase, TimestampMixin, table=True):
    """A company's leave category with its request, quota and rollover rules."""

    __tablename__ = "leave_category"
    __table_args__ = (sa.UniqueConstraint("company_id", "name", name="uq_category_company_name"),)

    company_id: uuid.UUID = Field(index=True)
    name: str = Field(max_length=255)
    code: str | None = Field(default=None, max_length=50)
    description: str | None = None
    color: str | None = Field(default=None, max_length=20)

    is_active: bool = True
    requires_approval: bool = True
    requires_attachment: bool = False
    attachment_required_after_days: int | None = None

    has_quota: bool = True
    accrual_method: str = Field(default=AccrualMethod.YEARLY, max_length=20)

    deduction_type: str = Field(default=DeductionType.WORKING_DAYS, max_length=20)
    allow_half_day: bool = False

    max_days_per_request: int | None = None
    min_notice_days: int | None = None
    max_advance_days: int | None = None
    allow_backdate: bool = False
    backdate_max_days: int | None = None

    allow_rollover: bool = False
    max_rollover_days: int | None = None
    rollover_expiry_month: int | None = None

    rules_json: dict[str, Any] = Field(default_factory=dict, sa_type=sa.JSON)
