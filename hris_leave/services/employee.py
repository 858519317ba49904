# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import BaseModel

from hris_leave.models.enums import EmploymentType

if TYPE_CHECKING:
    from hris_leave.schemas.auth import AuthContext


class EmployeeInfo(BaseModel):
    """Read-only employee snapshot from the Employee Directory."""

    id: uuid.UUID
    company_id: uuid.UUID
    full_name: str
    hire_date: date
    position_id: str
    grade_id: str | None = None
    employment_type: EmploymentType = EmploymentType.PERMANENT
    user_id: uuid.UUID | None = None  # login account, recipient of notifications
    is_active: bool = True
    is_manager: bool = False

    @property
    def recipient_id(self) -> uuid.UUID:
        return self.user_id or self.id


@runtime_checkable
class EmployeeService(Protocol):
    """Interface for the Employee Directory."""

    async def get_employee(self, company_id: uuid.UUID, employee_id: uuid.UUID) -> EmployeeInfo | None:
        """Fetch an employee snapshot. Returns None if not found."""
        ...

    async def list_active_employees(self, company_id: uuid.UUID) -> list[EmployeeInfo]:
        """List all active employees of a company."""
        ...

    async def list_managers(self, company_id: uuid.UUID) -> list[EmployeeInfo]:
        """List the employees who review leave requests."""
        ...

    async def get_employee_by_user(self, company_id: uuid.UUID, user_id: uuid.UUID) -> EmployeeInfo | None:
        """Find the employee a login account belongs to. Returns None if not found."""
        ...


class InMemoryEmployeeService:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._employees: dict[tuple[uuid.UUID, uuid.UUID], EmployeeInfo] = {}

    def seed(self, employee: EmployeeInfo) -> None:
        """Seed an employee for testing."""
        self._employees[(employee.company_id, employee.id)] = employee

    async def get_employee(self, company_id: uuid.UUID, employee_id: uuid.UUID) -> EmployeeInfo | None:
        return self._employees.get((company_id, employee_id))

    async def list_active_employees(self, company_id: uuid.UUID) -> list[EmployeeInfo]:
        return [e for e in self._employees.values() if e.company_id == company_id and e.is_active]

    async def list_managers(self, company_id: uuid.UUID) -> list[EmployeeInfo]:
        return [e for e in await self.list_active_employees(company_id) if e.is_manager]

    async def get_employee_by_user(self, company_id: uuid.UUID, user_id: uuid.UUID) -> EmployeeInfo | None:
        for employee in self._employees.values():
            if employee.company_id == company_id and employee.recipient_id == user_id:
                return employee
        return None


_employee_service: EmployeeService = InMemoryEmployeeService()


def get_employee_service() -> EmployeeService:
    """FastAPI dependency for the Employee Directory."""
    return _employee_service


def set_employee_service(service: EmployeeService) -> None:
    """Override the service (for testing or production wiring)."""
    global _employee_service
    _employee_service = service


async def acting_employee_id(employees: EmployeeService, auth: AuthContext) -> uuid.UUID | None:
    """Employee id behind the caller's login, or None when the login has no employee record."""
    employee = await employees.get_employee_by_user(auth.company_id, auth.user_id)
    return employee.id if employee is not None else None
