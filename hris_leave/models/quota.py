# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date

import sqlalchemy as sa
from sqlmodel import Field

from hris_leave.models.base import TimestampMixin, UUIDBase


class LeaveQuota(UUIDBase, TimestampMixin, table=True):
    """Per employee, category and year ledger of leave quota buckets.

    Granted buckets (opening, earned, rollover, adjustment) are whole days;
    consumption buckets (used, pending) allow half days.
    """

    __tablename__ = "leave_quota"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "category_id", "year", name="uq_quota_employee_category_year"),
        sa.Index("ix_quota_company_year", "company_id", "year"),
    )

    company_id: uuid.UUID
    employee_id: uuid.UUID = Field(index=True)
    category_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("leave_category.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    year: int

    opening_balance: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    earned_quota: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    rollover_quota: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    adjustment_quota: int = Field(default=0, sa_column_kwargs={"server_default": "0"})
    used_quota: float = Field(default=0.0, sa_column_kwargs={"server_default": "0"})
    pending_quota: float = Field(default=0.0, sa_column_kwargs={"server_default": "0"})

    rollover_expiry_date: date | None = None
    version: int = Field(default=1, sa_column_kwargs={"server_default": "1"})

    @property
    def granted(self) -> int:
        return self.opening_balance + self.earned_quota + self.rollover_quota + self.adjustment_quota

    @property
    def available(self) -> float:
        return self.granted - self.used_quota - self.pending_quota
