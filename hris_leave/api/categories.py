# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from hris_leave.api.deps import AdminDep, AuthDep, EmployeeServiceDep, validate_company_scope
from hris_leave.db import SessionDep
from hris_leave.schemas.category import (
    CategoryListResponse,
    CategoryResponse,
    CreateCategoryRequest,
    UpdateCategoryRequest,
)
from hris_leave.services import category as category_service

categories_router = APIRouter(
    prefix="/companies/{company_id}/leave-categories",
    tags=["leave-categories"],
    dependencies=[Depends(validate_company_scope)],
)


@categories_router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CreateCategoryRequest,
    session: SessionDep,
    auth: AdminDep,
    employees: EmployeeServiceDep,
) -> CategoryResponse:
    """Create a leave category and allocate this year's quotas (admin only)."""
    return await category_service.create_category(session, auth, employees, payload)


@categories_router.get("", response_model=CategoryListResponse)
async def list_categories(
    session: SessionDep,
    auth: AuthDep,
    active_only: bool = Query(default=False),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> CategoryListResponse:
    """List leave categories."""
    return await category_service.list_categories(
        session, auth.company_id, active_only=active_only, offset=offset, limit=limit
    )


@categories_router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(
    category_id: uuid.UUID,
    session: SessionDep,
    auth: AuthDep,
) -> CategoryResponse:
    """Get a single leave category."""
    return await category_service.get_category(session, auth.company_id, category_id)


@categories_router.patch("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: uuid.UUID,
    payload: UpdateCategoryRequest,
    session: SessionDep,
    auth: AdminDep,
) -> CategoryResponse:
    """Update a leave category (admin only)."""
    return await category_service.update_category(session, auth, category_id, payload)


@categories_router.post("/{category_id}/deactivate", response_model=CategoryResponse)
async def deactivate_category(
    category_id: uuid.UUID,
    session: SessionDep,
    auth: AdminDep,
) -> CategoryResponse:
    """Deactivate a leave category (admin only)."""
    return await category_service.deactivate_category(session, auth, category_id)
