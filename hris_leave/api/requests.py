# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from hris_leave.api.deps import ApproverDep, AuthDep, LeaveRequestServiceDep, validate_company_scope
from hris_leave.db import SessionDep
from hris_leave.models.enums import RequestStatus
from hris_leave.schemas.request import (
    CancelPayload,
    CreateLeaveRequestPayload,
    LeaveRequestListResponse,
    LeaveRequestResponse,
    RejectPayload,
)

requests_router = APIRouter(
    prefix="/companies/{company_id}/leave-requests",
    tags=["leave-requests"],
    dependencies=[Depends(validate_company_scope)],
)


@requests_router.post("", response_model=LeaveRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_leave_request(
    payload: CreateLeaveRequestPayload,
    session: SessionDep,
    auth: AuthDep,
    service: LeaveRequestServiceDep,
) -> LeaveRequestResponse:
    """Submit a new leave request."""
    return await service.create(session, auth, payload)


@requests_router.get("", response_model=LeaveRequestListResponse)
async def list_leave_requests(
    session: SessionDep,
    auth: AuthDep,
    service: LeaveRequestServiceDep,
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    employee_id: uuid.UUID | None = Query(default=None),
    category_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LeaveRequestListResponse:
    """List leave requests with optional filters."""
    return await service.list(session, auth, status_filter, employee_id, category_id, offset, limit)


@requests_router.get("/{request_id}", response_model=LeaveRequestResponse)
async def get_leave_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    service: LeaveRequestServiceDep,
) -> LeaveRequestResponse:
    """Get a single leave request."""
    return await service.get(session, auth, request_id)


@requests_router.post("/{request_id}/approve", response_model=LeaveRequestResponse)
async def approve_leave_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: ApproverDep,
    service: LeaveRequestServiceDep,
) -> LeaveRequestResponse:
    """Approve a waiting leave request (manager or admin)."""
    return await service.approve(session, auth, request_id)


@requests_router.post("/{request_id}/reject", response_model=LeaveRequestResponse)
async def reject_leave_request(
    request_id: uuid.UUID,
    payload: RejectPayload,
    session: SessionDep,
    auth: ApproverDep,
    service: LeaveRequestServiceDep,
) -> LeaveRequestResponse:
    """Reject a waiting leave request (manager or admin)."""
    return await service.reject(session, auth, request_id, payload)


@requests_router.post("/{request_id}/cancel", response_model=LeaveRequestResponse)
async def cancel_leave_request(
    request_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    service: LeaveRequestServiceDep,
    payload: CancelPayload | None = None,
) -> LeaveRequestResponse:
    """Cancel a waiting leave request (the requester or an admin)."""
    return await service.cancel(session, auth, request_id, payload)
