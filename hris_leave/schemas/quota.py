# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field


class QuotaResponse(BaseModel):
    """A ledger entry with its derived availability."""

    id: uuid.UUID
    company_id: uuid.UUID
    employee_id: uuid.UUID
    category_id: uuid.UUID
    year: int
    opening_balance: int
    earned_quota: int
    rollover_quota: int
    adjustment_quota: int
    used_quota: float
    pending_quota: float
    available_quota: float
    rollover_expiry_date: date | None
    created_at: datetime
    updated_at: datetime


class QuotaListResponse(BaseModel):
    items: list[QuotaResponse]
    total: int


class AdjustQuotaRequest(BaseModel):
    """Request body for an HR quota correction."""

    delta: int = Field(description="Signed whole days: positive to add, negative to deduct")
    reason: str = Field(min_length=1, max_length=1000)


class AllocationResponse(BaseModel):
    """Ledger entries created by an allocation run (existing entries are not repeated)."""

    items: list[QuotaResponse]
    total: int
