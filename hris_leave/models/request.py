# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime

import sqlalchemy as sa
from sqlmodel import Field

from hris_leave.models.base import TimestampMixin, UUIDBase, now_utc
from hris_leave.models.enums import DurationType, RequestStatus


class LeaveRequest(UUIDBase, TimestampMixin, table=True):
    """An employee's leave request with approval workflow state."""

    __tablename__ = "leave_request"
    __table_args__ = (
        sa.Index("ix_leave_request_company_status", "company_id", "status"),
        sa.Index("ix_leave_request_employee_dates", "employee_id", "start_date", "end_date"),
    )

    company_id: uuid.UUID = Field(index=True)
    employee_id: uuid.UUID = Field(index=True)
    category_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("leave_category.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    # Ledger entry holding this request's reservation; NULL for categories without quota.
    quota_id: uuid.UUID | None = Field(
        default=None,
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("leave_quota.id"), nullable=True, index=True),
    )

    start_date: date
    end_date: date
    duration_type: str = Field(default=DurationType.FULL_DAY, max_length=30)
    total_days: float
    working_days: float
    # Days reserved on the ledger entry; working or calendar days per the category.
    deducted_days: float = 0.0

    reason: str = ""
    attachment_url: str | None = None
    emergency_leave: bool = False
    is_backdate: bool = False

    status: str = Field(
        default=RequestStatus.WAITING_APPROVAL,
        max_length=30,
        index=True,
        sa_column_kwargs={"server_default": RequestStatus.WAITING_APPROVAL.value},
    )
    submitted_at: datetime = Field(
        default_factory=now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
    )
    approved_by: uuid.UUID | None = None
    approved_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    rejection_reason: str | None = None
    cancelled_by: uuid.UUID | None = None
    cancelled_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    cancellation_reason: str | None = None
