# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from pathlib import PurePath
from typing import Self

from pydantic import Base64Bytes, BaseModel, Field, model_validator

from hris_leave.models.enums import DurationType, RequestStatus

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class AttachmentPayload(BaseModel):
    """A supporting document, base64-encoded in JSON bodies."""

    filename: str = Field(min_length=1, max_length=255)
    content: Base64Bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return PurePath(self.filename).suffix.lower()


class CreateLeaveRequestPayload(BaseModel):
    """Request body for submitting a new leave request."""

    employee_id: uuid.UUID
    category_id: uuid.UUID
    start_date: date
    end_date: date
    duration_type: DurationType = DurationType.FULL_DAY
    reason: str = Field(default="", max_length=2000)
    emergency_leave: bool = False
    attachment: AttachmentPayload | None = None

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must not be before start_date"
            raise ValueError(msg)
        return self


class RejectPayload(BaseModel):
    """Request body for rejecting a leave request."""

    reason: str = Field(min_length=1, max_length=1000)


class CancelPayload(BaseModel):
    """Request body for cancelling a leave request."""

    reason: str | None = Field(default=None, max_length=1000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class LeaveRequestResponse(BaseModel):
    """Response schema for a single leave request."""

    id: uuid.UUID
    company_id: uuid.UUID
    employee_id: uuid.UUID
    category_id: uuid.UUID
    quota_id: uuid.UUID | None
    start_date: date
    end_date: date
    duration_type: DurationType
    total_days: float
    working_days: float
    deducted_days: float
    reason: str
    attachment_url: str | None
    emergency_leave: bool
    is_backdate: bool
    status: RequestStatus
    submitted_at: datetime
    approved_by: uuid.UUID | None
    approved_at: datetime | None
    rejection_reason: str | None
    cancelled_by: uuid.UUID | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    created_at: datetime


class LeaveRequestListResponse(BaseModel):
    """Paginated list of leave requests."""

    items: list[LeaveRequestResponse]
    total: int
