# ruff: noqa: TC003
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class LeaveAttendance:
    """One attendance row materialized for an approved leave day."""

    employee_id: uuid.UUID
    day: date
    status: str
    category_id: uuid.UUID
    approver_id: uuid.UUID


@runtime_checkable
class AttendanceRecorder(Protocol):
    """Interface for the Attendance Service."""

    async def record_leave(
        self,
        company_id: uuid.UUID,
        employee_id: uuid.UUID,
        day: date,
        status: str,
        category_id: uuid.UUID,
        approver_id: uuid.UUID,
    ) -> None:
        """Create the attendance row for one leave day. Existing rows are kept."""
        ...


class InMemoryAttendanceRecorder:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self.records: dict[tuple[uuid.UUID, uuid.UUID, date], LeaveAttendance] = {}

    async def record_leave(
        self,
        company_id: uuid.UUID,
        employee_id: uuid.UUID,
        day: date,
        status: str,
        category_id: uuid.UUID,
        approver_id: uuid.UUID,
    ) -> None:
        key = (company_id, employee_id, day)
        if key in self.records:
            return
        self.records[key] = LeaveAttendance(
            employee_id=employee_id,
            day=day,
            status=status,
            category_id=category_id,
            approver_id=approver_id,
        )


_attendance_recorder: AttendanceRecorder = InMemoryAttendanceRecorder()


def get_attendance_recorder() -> AttendanceRecorder:
    """FastAPI dependency for the Attendance Service."""
    return _attendance_recorder


def set_attendance_recorder(recorder: AttendanceRecorder) -> None:
    """Override the recorder (for testing or production wiring)."""
    global _attendance_recorder
    _attendance_recorder = recorder
