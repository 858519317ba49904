from sqlmodel import SQLModel

from hris_leave.models.audit import AuditLog
from hris_leave.models.base import TimestampMixin, UUIDBase
from hris_leave.models.category import LeaveCategory
from hris_leave.models.enums import (
    AccrualMethod,
    AuditAction,
    AuditEntityType,
    DeductionType,
    DurationType,
    EmploymentType,
    IneligibilityReason,
    NotificationType,
    RequestStatus,
)
from hris_leave.models.quota import LeaveQuota
from hris_leave.models.request import LeaveRequest

__all__ = [
    "AccrualMethod",
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "DeductionType",
    "DurationType",
    "EmploymentType",
    "IneligibilityReason",
    "LeaveCategory",
    "LeaveQuota",
    "LeaveRequest",
    "NotificationType",
    "RequestStatus",
    "SQLModel",
    "TimestampMixin",
    "UUIDBase",
]
