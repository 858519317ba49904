# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from hris_leave.api.deps import AdminDep, AuthDep, EmployeeServiceDep, validate_company_scope
from hris_leave.db import SessionDep
from hris_leave.exceptions import ForbiddenError
from hris_leave.schemas.quota import AdjustQuotaRequest, AllocationResponse, QuotaListResponse, QuotaResponse
from hris_leave.services import quota as quota_service
from hris_leave.services.employee import acting_employee_id

quotas_router = APIRouter(
    prefix="/companies/{company_id}/quotas",
    tags=["quotas"],
    dependencies=[Depends(validate_company_scope)],
)

employee_quotas_router = APIRouter(
    prefix="/companies/{company_id}/employees/{employee_id}/quotas",
    tags=["quotas"],
    dependencies=[Depends(validate_company_scope)],
)


@quotas_router.get("", response_model=QuotaListResponse)
async def list_company_quotas(
    session: SessionDep,
    auth: AdminDep,
    year: int = Query(ge=1900, le=9999),
    category_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> QuotaListResponse:
    """List every ledger entry of a year (admin only)."""
    return await quota_service.list_company_quotas(session, auth.company_id, year, category_id, offset, limit)


@quotas_router.get("/{quota_id}", response_model=QuotaResponse)
async def get_quota(
    quota_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    employees: EmployeeServiceDep,
) -> QuotaResponse:
    """Get a single ledger entry."""
    quota = await quota_service.get_quota(session, auth.company_id, quota_id)
    if not auth.can_approve and quota.employee_id != await acting_employee_id(employees, auth):
        raise ForbiddenError("Not authorized to view this leave quota")
    return quota


@quotas_router.post("/{quota_id}/adjust", response_model=QuotaResponse)
async def adjust_quota(
    quota_id: uuid.UUID,
    payload: AdjustQuotaRequest,
    session: SessionDep,
    auth: AdminDep,
) -> QuotaResponse:
    """Apply a signed correction to a ledger entry (admin only)."""
    return await quota_service.adjust_quota(session, auth, quota_id, payload)


@quotas_router.post("/{quota_id}/recalculate", response_model=QuotaResponse)
async def recalculate_quota(
    quota_id: uuid.UUID,
    session: SessionDep,
    auth: AdminDep,
    employees: EmployeeServiceDep,
) -> QuotaResponse:
    """Re-derive a ledger entry from the category's current rules (admin only)."""
    return await quota_service.recalculate_quota(session, auth, employees, quota_id)


@quotas_router.delete("/{quota_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quota(
    quota_id: uuid.UUID,
    session: SessionDep,
    auth: AdminDep,
) -> None:
    """Delete an unreferenced ledger entry (admin only)."""
    await quota_service.delete_quota(session, auth, quota_id)


@employee_quotas_router.get("", response_model=QuotaListResponse)
async def list_employee_quotas(
    employee_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
    employees: EmployeeServiceDep,
    year: int | None = Query(default=None, ge=1900, le=9999),
) -> QuotaListResponse:
    """List an employee's ledger entries."""
    if not auth.can_approve and employee_id != await acting_employee_id(employees, auth):
        raise ForbiddenError("Not authorized to view these leave quotas")
    return await quota_service.list_employee_quotas(session, auth.company_id, employee_id, year)


@employee_quotas_router.post("", response_model=AllocationResponse, status_code=status.HTTP_201_CREATED)
async def allocate_employee_quotas(
    employee_id: uuid.UUID,
    session: SessionDep,
    auth: AdminDep,
    employees: EmployeeServiceDep,
    year: int | None = Query(default=None, ge=1900, le=9999),
) -> AllocationResponse:
    """Allocate quotas across all active categories for an employee (admin only)."""
    return await quota_service.assign_employee_quotas(session, auth, employees, employee_id, year)
