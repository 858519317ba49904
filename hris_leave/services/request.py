# ruff: noqa: TC003
"""Leave request lifecycle: create, approve, reject, cancel.

Each transition runs in one transaction together with its ledger mutation.
Attendance rows and notifications are side effects that run after commit;
their failures are logged and never undo the committed decision.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from hris_leave.config import get_settings
from hris_leave.exceptions import (
    AlreadyProcessedError,
    AttachmentRequiredError,
    AttachmentTooLargeError,
    AttachmentTypeNotAllowedError,
    BackdateNotAllowedError,
    BackdateTooOldError,
    EmployeeNotFoundError,
    ExceedsMaxDaysError,
    ForbiddenError,
    HalfDayNotAllowedError,
    IneligibleError,
    InsufficientNoticeError,
    LeaveRequestNotFoundError,
    NoWorkingDaysError,
    OverlappingLeaveError,
    QuotaNotFoundError,
    TooFarInAdvanceError,
)
from hris_leave.models.base import now_utc
from hris_leave.models.enums import (
    AuditAction,
    AuditEntityType,
    DurationType,
    IneligibilityReason,
    NotificationType,
    RequestStatus,
)
from hris_leave.models.request import LeaveRequest
from hris_leave.schemas.request import LeaveRequestListResponse, LeaveRequestResponse
from hris_leave.services.audit import model_to_audit_dict, write_audit_log
from hris_leave.services.category import get_category_model
from hris_leave.services.duration import (
    calculate_deduction_days,
    calculate_total_days,
    calculate_working_days,
    iter_working_dates,
)
from hris_leave.services.eligibility import check_eligibility
from hris_leave.services.employee import acting_employee_id
from hris_leave.services.notification import Notification
from hris_leave.services.quota import (
    _consume,
    _find_quota_for_update,
    _get_quota_for_update,
    _release,
    _reserve,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from hris_leave.config import Settings
    from hris_leave.models.category import LeaveCategory
    from hris_leave.models.quota import LeaveQuota
    from hris_leave.schemas.auth import AuthContext
    from hris_leave.schemas.request import (
        AttachmentPayload,
        CancelPayload,
        CreateLeaveRequestPayload,
        RejectPayload,
    )
    from hris_leave.services.attendance import AttendanceRecorder
    from hris_leave.services.employee import EmployeeService
    from hris_leave.services.notification import NotificationDispatcher
    from hris_leave.services.storage import FileStorage

logger = logging.getLogger(__name__)

# Requests in these states hold their dates.
_ACTIVE_STATUSES = [RequestStatus.WAITING_APPROVAL.value, RequestStatus.APPROVED.value]


# ---------------------------------------------------------------------------
# Policy checks
# ---------------------------------------------------------------------------


def validate_request_dates(category: LeaveCategory, start_date: date, end_date: date, today: date) -> bool:
    """Check the category's timing rules. Returns whether the request is backdated."""
    is_backdate = start_date < today
    if is_backdate:
        if not category.allow_backdate:
            raise BackdateNotAllowedError
        if category.backdate_max_days is not None and (today - start_date).days > category.backdate_max_days:
            raise BackdateTooOldError(category.backdate_max_days)

    days_ahead = (start_date - today).days
    if category.min_notice_days is not None and days_ahead < category.min_notice_days:
        raise InsufficientNoticeError(category.min_notice_days)
    if category.max_advance_days is not None and days_ahead > category.max_advance_days:
        raise TooFarInAdvanceError(category.max_advance_days)

    span = (end_date - start_date).days + 1
    if category.max_days_per_request is not None and span > category.max_days_per_request:
        raise ExceedsMaxDaysError(category.max_days_per_request)

    return is_backdate


def attachment_required(category: LeaveCategory, working_days: float) -> bool:
    if not category.requires_attachment:
        return False
    threshold = category.attachment_required_after_days
    return threshold is None or working_days > threshold


def validate_attachment(
    category: LeaveCategory,
    attachment: AttachmentPayload | None,
    working_days: float,
    settings: Settings,
) -> None:
    if attachment is None:
        if attachment_required(category, working_days):
            raise AttachmentRequiredError
        return
    if attachment.size > settings.attachment_max_bytes:
        raise AttachmentTooLargeError(settings.attachment_max_bytes)
    if attachment.extension not in settings.attachment_allowed_extensions:
        raise AttachmentTypeNotAllowedError(settings.attachment_allowed_extensions)


def check_admission(quota: LeaveQuota | None) -> LeaveQuota:
    """Request-time check that the employee has a ledger entry with balance left."""
    if quota is None:
        raise QuotaNotFoundError
    if quota.available <= 0:
        raise IneligibleError(IneligibilityReason.NO_QUOTA_AVAILABLE)
    return quota


async def _lock_employee_submissions(session: AsyncSession, employee_id: uuid.UUID) -> None:
    """Serialize an employee's submissions until the transaction ends.

    Takes a PostgreSQL transaction-level advisory lock keyed on the employee,
    so the overlap check and the insert of concurrent submissions cannot
    interleave. Other dialects run without it.
    """
    if session.get_bind().dialect.name != "postgresql":
        return
    key = int.from_bytes(employee_id.bytes[:8], "big", signed=True)
    await session.execute(select(func.pg_advisory_xact_lock(key)))


async def _check_overlap(
    session: AsyncSession,
    company_id: uuid.UUID,
    employee_id: uuid.UUID,
    start_date: date,
    end_date: date,
) -> None:
    """Raise if a waiting or approved request shares any day with the range."""
    result = await session.execute(
        select(LeaveRequest.id)
        .where(
            col(LeaveRequest.company_id) == company_id,
            col(LeaveRequest.employee_id) == employee_id,
            col(LeaveRequest.status).in_(_ACTIVE_STATUSES),
            col(LeaveRequest.start_date) <= end_date,
            col(LeaveRequest.end_date) >= start_date,
        )
        .limit(1)
    )
    if result.first() is not None:
        raise OverlappingLeaveError


async def _get_request_for_update(
    session: AsyncSession,
    company_id: uuid.UUID,
    request_id: uuid.UUID,
) -> LeaveRequest:
    result = await session.execute(
        select(LeaveRequest)
        .where(
            col(LeaveRequest.id) == request_id,
            col(LeaveRequest.company_id) == company_id,
        )
        .with_for_update()
    )
    leave_request = result.scalar_one_or_none()
    if leave_request is None:
        raise LeaveRequestNotFoundError
    return leave_request


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class LeaveRequestService:
    """Orchestrates leave requests over the ledger and the external collaborators."""

    def __init__(
        self,
        employees: EmployeeService,
        attendance: AttendanceRecorder,
        storage: FileStorage,
        notifications: NotificationDispatcher,
        settings: Settings | None = None,
    ) -> None:
        self.employees = employees
        self.attendance = attendance
        self.storage = storage
        self.notifications = notifications
        self.settings = settings or get_settings()

    def build_response(self, leave_request: LeaveRequest) -> LeaveRequestResponse:
        """Map a request model to its response schema, resolving the attachment URL."""
        attachment_url = (
            self.storage.resolve_url(leave_request.attachment_url) if leave_request.attachment_url else None
        )
        return LeaveRequestResponse(
            id=leave_request.id,
            company_id=leave_request.company_id,
            employee_id=leave_request.employee_id,
            category_id=leave_request.category_id,
            quota_id=leave_request.quota_id,
            start_date=leave_request.start_date,
            end_date=leave_request.end_date,
            duration_type=DurationType(leave_request.duration_type),
            total_days=leave_request.total_days,
            working_days=leave_request.working_days,
            deducted_days=leave_request.deducted_days,
            reason=leave_request.reason,
            attachment_url=attachment_url,
            emergency_leave=leave_request.emergency_leave,
            is_backdate=leave_request.is_backdate,
            status=RequestStatus(leave_request.status),
            submitted_at=leave_request.submitted_at,
            approved_by=leave_request.approved_by,
            approved_at=leave_request.approved_at,
            rejection_reason=leave_request.rejection_reason,
            cancelled_by=leave_request.cancelled_by,
            cancelled_at=leave_request.cancelled_at,
            cancellation_reason=leave_request.cancellation_reason,
            created_at=leave_request.created_at,
        )

    # -- Create ---------------------------------------------------------------

    async def create(
        self,
        session: AsyncSession,
        auth: AuthContext,
        payload: CreateLeaveRequestPayload,
        today: date | None = None,
    ) -> LeaveRequestResponse:
        """Submit a leave request and reserve its days on the ledger.

        Flow:
        1. Resolve employee and category
        2. Allocation-time eligibility
        3. Timing rules, half-day rule, then overlap under the employee lock
        4. Duration and attachment rules
        5. Lock the ledger entry and check there is balance left
        6. Upload the attachment
        7. Insert the request and reserve, in one transaction
        8. Commit, then notify managers
        """
        today = today or date.today()

        if not auth.can_approve and await acting_employee_id(self.employees, auth) != payload.employee_id:
            raise ForbiddenError("Employees can only request leave for themselves")

        # 1. Resolve employee and category.
        employee = await self.employees.get_employee(auth.company_id, payload.employee_id)
        if employee is None:
            raise EmployeeNotFoundError
        category = await get_category_model(session, auth.company_id, payload.category_id)

        # 2. Eligibility.
        eligibility = check_eligibility(employee, category, today)
        if not eligibility.eligible:
            raise IneligibleError(eligibility.reason or IneligibilityReason.NO_MATCHING_RULE)

        # 3. Timing, half-day, overlap.
        is_backdate = validate_request_dates(category, payload.start_date, payload.end_date, today)
        if payload.duration_type.is_half_day and not category.allow_half_day:
            raise HalfDayNotAllowedError
        await _lock_employee_submissions(session, employee.id)
        await _check_overlap(session, auth.company_id, employee.id, payload.start_date, payload.end_date)

        # 4. Duration and attachment.
        total_days = calculate_total_days(payload.start_date, payload.end_date, payload.duration_type)
        working_days = calculate_working_days(payload.start_date, payload.end_date, payload.duration_type)
        deducted_days = calculate_deduction_days(category, total_days, working_days)
        if deducted_days <= 0:
            raise NoWorkingDaysError
        validate_attachment(category, payload.attachment, working_days, self.settings)

        # 5. Admission against the ledger entry of the start year.
        quota: LeaveQuota | None = None
        if category.has_quota:
            quota = check_admission(
                await _find_quota_for_update(session, employee.id, category.id, payload.start_date.year)
            )

        # 6. Upload.
        stored_path: str | None = None
        if payload.attachment is not None:
            stored_path = await self.storage.upload(
                employee.id, payload.attachment.content, payload.attachment.filename
            )

        # 7. Insert and reserve.
        leave_request = LeaveRequest(
            company_id=auth.company_id,
            employee_id=employee.id,
            category_id=category.id,
            quota_id=quota.id if quota is not None else None,
            start_date=payload.start_date,
            end_date=payload.end_date,
            duration_type=payload.duration_type.value,
            total_days=total_days,
            working_days=working_days,
            deducted_days=deducted_days,
            reason=payload.reason,
            attachment_url=stored_path,
            emergency_leave=payload.emergency_leave,
            is_backdate=is_backdate,
            status=RequestStatus.WAITING_APPROVAL.value,
            submitted_at=now_utc(),
        )
        try:
            session.add(leave_request)
            await session.flush()

            if quota is not None:
                _reserve(quota, deducted_days)
                await session.flush()

            await write_audit_log(
                session,
                company_id=auth.company_id,
                actor_id=auth.user_id,
                entity_type=AuditEntityType.REQUEST,
                entity_id=leave_request.id,
                action=AuditAction.SUBMIT,
                after_json=model_to_audit_dict(leave_request),
            )

            # 8. Commit.
            await session.commit()
        except Exception:
            await session.rollback()
            if stored_path is not None:
                await self._discard_attachment(stored_path)
            raise

        await session.refresh(leave_request)
        response = self.build_response(leave_request)

        await self._notify_managers(
            auth.company_id,
            NotificationType.LEAVE_REQUEST,
            title="New leave request",
            message=f"{employee.full_name} requested {category.name} from "
            f"{payload.start_date.isoformat()} to {payload.end_date.isoformat()}",
            request=leave_request,
            sender_id=auth.user_id,
        )
        return response

    # -- Decisions -------------------------------------------------------------

    async def approve(
        self,
        session: AsyncSession,
        auth: AuthContext,
        request_id: uuid.UUID,
    ) -> LeaveRequestResponse:
        """Approve a waiting request: its reservation becomes usage."""
        if not auth.can_approve:
            raise ForbiddenError("Only managers and admins can approve leave requests")

        leave_request = await _get_request_for_update(session, auth.company_id, request_id)
        if leave_request.status != RequestStatus.WAITING_APPROVAL.value:
            raise AlreadyProcessedError

        category = await get_category_model(session, auth.company_id, leave_request.category_id)
        before = model_to_audit_dict(leave_request)

        if leave_request.quota_id is not None:
            quota = await _get_quota_for_update(session, auth.company_id, leave_request.quota_id)
            _consume(quota, leave_request.deducted_days)

        leave_request.status = RequestStatus.APPROVED.value
        leave_request.approved_by = auth.user_id
        leave_request.approved_at = now_utc()
        leave_request.updated_at = now_utc()

        await self._commit_transition(session, auth, leave_request, AuditAction.APPROVE, before)

        await self._record_attendance(auth.company_id, leave_request, category.name, auth.user_id)
        await self._notify_employee(
            auth.company_id,
            leave_request,
            NotificationType.LEAVE_APPROVED,
            title="Leave request approved",
            message=f"Your {category.name} request from {leave_request.start_date.isoformat()} "
            f"to {leave_request.end_date.isoformat()} was approved",
            sender_id=auth.user_id,
        )
        return self.build_response(leave_request)

    async def reject(
        self,
        session: AsyncSession,
        auth: AuthContext,
        request_id: uuid.UUID,
        payload: RejectPayload,
    ) -> LeaveRequestResponse:
        """Reject a waiting request: its reservation is released."""
        if not auth.can_approve:
            raise ForbiddenError("Only managers and admins can reject leave requests")

        leave_request = await _get_request_for_update(session, auth.company_id, request_id)
        if leave_request.status != RequestStatus.WAITING_APPROVAL.value:
            raise AlreadyProcessedError

        category = await get_category_model(session, auth.company_id, leave_request.category_id)
        before = model_to_audit_dict(leave_request)

        if leave_request.quota_id is not None:
            quota = await _get_quota_for_update(session, auth.company_id, leave_request.quota_id)
            _release(quota, leave_request.deducted_days)

        leave_request.status = RequestStatus.REJECTED.value
        leave_request.rejection_reason = payload.reason
        leave_request.approved_by = auth.user_id
        leave_request.approved_at = now_utc()
        leave_request.updated_at = now_utc()

        await self._commit_transition(session, auth, leave_request, AuditAction.REJECT, before)

        await self._notify_employee(
            auth.company_id,
            leave_request,
            NotificationType.LEAVE_REJECTED,
            title="Leave request rejected",
            message=f"Your {category.name} request was rejected: {payload.reason}",
            sender_id=auth.user_id,
        )
        return self.build_response(leave_request)

    async def cancel(
        self,
        session: AsyncSession,
        auth: AuthContext,
        request_id: uuid.UUID,
        payload: CancelPayload | None = None,
    ) -> LeaveRequestResponse:
        """Withdraw a waiting request: its reservation is released.

        Only the requesting employee or an admin can cancel, and approved
        leave cannot be cancelled.
        """
        leave_request = await _get_request_for_update(session, auth.company_id, request_id)
        if leave_request.status != RequestStatus.WAITING_APPROVAL.value:
            raise AlreadyProcessedError

        if not auth.is_admin and await acting_employee_id(self.employees, auth) != leave_request.employee_id:
            raise ForbiddenError("Not authorized to cancel this leave request")

        before = model_to_audit_dict(leave_request)

        if leave_request.quota_id is not None:
            quota = await _get_quota_for_update(session, auth.company_id, leave_request.quota_id)
            _release(quota, leave_request.deducted_days)

        leave_request.status = RequestStatus.CANCELLED.value
        leave_request.cancelled_by = auth.user_id
        leave_request.cancelled_at = now_utc()
        leave_request.cancellation_reason = payload.reason if payload else None
        leave_request.updated_at = now_utc()

        await self._commit_transition(session, auth, leave_request, AuditAction.CANCEL, before)

        await self._notify_managers(
            auth.company_id,
            NotificationType.LEAVE_CANCELLED,
            title="Leave request cancelled",
            message=f"Leave request from {leave_request.start_date.isoformat()} "
            f"to {leave_request.end_date.isoformat()} was cancelled",
            request=leave_request,
            sender_id=auth.user_id,
        )
        return self.build_response(leave_request)

    # -- Read path -------------------------------------------------------------

    async def get(
        self,
        session: AsyncSession,
        auth: AuthContext,
        request_id: uuid.UUID,
    ) -> LeaveRequestResponse:
        result = await session.execute(
            select(LeaveRequest).where(
                col(LeaveRequest.id) == request_id,
                col(LeaveRequest.company_id) == auth.company_id,
            )
        )
        leave_request = result.scalar_one_or_none()
        if leave_request is None:
            raise LeaveRequestNotFoundError
        if not auth.can_approve and leave_request.employee_id != await acting_employee_id(self.employees, auth):
            raise LeaveRequestNotFoundError
        return self.build_response(leave_request)

    async def list(
        self,
        session: AsyncSession,
        auth: AuthContext,
        status_filter: RequestStatus | None = None,
        employee_id: uuid.UUID | None = None,
        category_id: uuid.UUID | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> LeaveRequestListResponse:
        """List requests, newest first. Employees only see their own."""
        filters = [col(LeaveRequest.company_id) == auth.company_id]
        if not auth.can_approve:
            employee_id = await acting_employee_id(self.employees, auth)
            if employee_id is None:
                return LeaveRequestListResponse(items=[], total=0)
        if status_filter is not None:
            filters.append(col(LeaveRequest.status) == status_filter.value)
        if employee_id is not None:
            filters.append(col(LeaveRequest.employee_id) == employee_id)
        if category_id is not None:
            filters.append(col(LeaveRequest.category_id) == category_id)

        count_result = await session.execute(select(func.count()).select_from(LeaveRequest).where(*filters))
        total = count_result.scalar_one()

        result = await session.execute(
            select(LeaveRequest)
            .where(*filters)
            .order_by(col(LeaveRequest.submitted_at).desc())
            .offset(offset)
            .limit(limit)
        )
        requests = list(result.scalars().all())
        return LeaveRequestListResponse(items=[self.build_response(r) for r in requests], total=total)

    # -- Internal helpers ------------------------------------------------------

    async def _commit_transition(
        self,
        session: AsyncSession,
        auth: AuthContext,
        leave_request: LeaveRequest,
        action: AuditAction,
        before: dict[str, object],
    ) -> None:
        await session.flush()
        await write_audit_log(
            session,
            company_id=auth.company_id,
            actor_id=auth.user_id,
            entity_type=AuditEntityType.REQUEST,
            entity_id=leave_request.id,
            action=action,
            before_json=before,
            after_json=model_to_audit_dict(leave_request),
        )
        await session.commit()
        await session.refresh(leave_request)
        logger.info("Leave request %s %s by %s", leave_request.id, leave_request.status, auth.user_id)

    async def _record_attendance(
        self,
        company_id: uuid.UUID,
        leave_request: LeaveRequest,
        status: str,
        approver_id: uuid.UUID,
    ) -> None:
        """One attendance row per working day. Failures are logged per day."""
        for day in iter_working_dates(leave_request.start_date, leave_request.end_date):
            try:
                await self.attendance.record_leave(
                    company_id,
                    leave_request.employee_id,
                    day,
                    status,
                    leave_request.category_id,
                    approver_id,
                )
            except Exception:
                logger.exception(
                    "Failed to record attendance for request=%s employee=%s day=%s",
                    leave_request.id,
                    leave_request.employee_id,
                    day,
                )

    def _notification_data(self, leave_request: LeaveRequest) -> dict[str, object]:
        return {
            "leave_request_id": str(leave_request.id),
            "employee_id": str(leave_request.employee_id),
            "category_id": str(leave_request.category_id),
            "start_date": leave_request.start_date.isoformat(),
            "end_date": leave_request.end_date.isoformat(),
            "status": leave_request.status,
        }

    async def _notify_managers(
        self,
        company_id: uuid.UUID,
        notification_type: NotificationType,
        *,
        title: str,
        message: str,
        request: LeaveRequest,
        sender_id: uuid.UUID,
    ) -> None:
        try:
            managers = await self.employees.list_managers(company_id)
        except Exception:
            logger.exception("Could not load managers to notify about request=%s", request.id)
            return
        data = self._notification_data(request)
        for manager in managers:
            if manager.id == request.employee_id:
                continue
            self.notifications.submit(
                Notification(
                    company_id=company_id,
                    recipient_id=manager.recipient_id,
                    sender_id=sender_id,
                    type=notification_type,
                    title=title,
                    message=message,
                    data=data,
                )
            )

    async def _notify_employee(
        self,
        company_id: uuid.UUID,
        leave_request: LeaveRequest,
        notification_type: NotificationType,
        *,
        title: str,
        message: str,
        sender_id: uuid.UUID,
    ) -> None:
        recipient_id = leave_request.employee_id
        try:
            employee = await self.employees.get_employee(company_id, leave_request.employee_id)
        except Exception:
            logger.warning("Employee lookup failed for request=%s", leave_request.id, exc_info=True)
            employee = None
        if employee is not None:
            recipient_id = employee.recipient_id

        self.notifications.submit(
            Notification(
                company_id=company_id,
                recipient_id=recipient_id,
                sender_id=sender_id,
                type=notification_type,
                title=title,
                message=message,
                data=self._notification_data(leave_request),
            )
        )

    async def _discard_attachment(self, path: str) -> None:
        try:
            await self.storage.delete(path)
        except Exception:
            logger.warning("Failed to remove orphaned attachment %s", path, exc_info=True)
