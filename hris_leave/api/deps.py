# ruff: noqa: B008, TC003
from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import Depends, Header, Path

from hris_leave.exceptions import ForbiddenError
from hris_leave.schemas.auth import AuthContext, Role
from hris_leave.services.attendance import AttendanceRecorder, get_attendance_recorder
from hris_leave.services.employee import EmployeeService, get_employee_service
from hris_leave.services.notification import NotificationDispatcher, get_notification_dispatcher
from hris_leave.services.request import LeaveRequestService
from hris_leave.services.storage import FileStorage, get_file_storage


async def get_auth_context(
    x_company_id: uuid.UUID = Header(),
    x_user_id: uuid.UUID = Header(),
    x_role: Role = Header(default="employee"),
) -> AuthContext:
    """Extract dev auth context from request headers."""
    return AuthContext(company_id=x_company_id, user_id=x_user_id, role=x_role)


AuthDep = Annotated[AuthContext, Depends(get_auth_context)]


async def require_admin(
    auth: AuthDep,
) -> AuthContext:
    """Require admin role for the request."""
    if not auth.is_admin:
        raise ForbiddenError("Admin access required")
    return auth


AdminDep = Annotated[AuthContext, Depends(require_admin)]


async def require_approver(
    auth: AuthDep,
) -> AuthContext:
    """Require a manager or admin role for the request."""
    if not auth.can_approve:
        raise ForbiddenError("Manager or admin access required")
    return auth


ApproverDep = Annotated[AuthContext, Depends(require_approver)]


async def validate_company_scope(
    company_id: uuid.UUID = Path(),
    auth: AuthContext = Depends(get_auth_context),
) -> AuthContext:
    """Ensure the path company_id matches the auth header company_id."""
    if company_id != auth.company_id:
        raise ForbiddenError("Company ID mismatch")
    return auth


EmployeeServiceDep = Annotated[EmployeeService, Depends(get_employee_service)]


def get_leave_request_service(
    employees: EmployeeService = Depends(get_employee_service),
    attendance: AttendanceRecorder = Depends(get_attendance_recorder),
    storage: FileStorage = Depends(get_file_storage),
    notifications: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> LeaveRequestService:
    """Assemble the request lifecycle service from the configured collaborators."""
    return LeaveRequestService(employees, attendance, storage, notifications)


LeaveRequestServiceDep = Annotated[LeaveRequestService, Depends(get_leave_request_service)]
