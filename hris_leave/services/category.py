# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from hris_leave.exceptions import CategoryNotFoundError, ConflictError
from hris_leave.models.base import now_utc
from hris_leave.models.category import LeaveCategory
from hris_leave.models.enums import AccrualMethod, AuditAction, AuditEntityType, DeductionType
from hris_leave.schemas.category import CategoryListResponse, CategoryResponse
from hris_leave.services.audit import model_to_audit_dict, write_audit_log
from hris_leave.services.eligibility import dump_rule_set, parse_rule_set
from hris_leave.services.quota import allocate_category_quotas

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from hris_leave.schemas.auth import AuthContext
    from hris_leave.schemas.category import CreateCategoryRequest, UpdateCategoryRequest
    from hris_leave.services.employee import EmployeeService

logger = logging.getLogger(__name__)


def build_category_response(category: LeaveCategory) -> CategoryResponse:
    """Build a CategoryResponse from a DB model."""
    return CategoryResponse(
        id=category.id,
        company_id=category.company_id,
        name=category.name,
        code=category.code,
        description=category.description,
        color=category.color,
        is_active=category.is_active,
        requires_approval=category.requires_approval,
        requires_attachment=category.requires_attachment,
        attachment_required_after_days=category.attachment_required_after_days,
        has_quota=category.has_quota,
        accrual_method=AccrualMethod(category.accrual_method),
        deduction_type=DeductionType(category.deduction_type),
        allow_half_day=category.allow_half_day,
        max_days_per_request=category.max_days_per_request,
        min_notice_days=category.min_notice_days,
        max_advance_days=category.max_advance_days,
        allow_backdate=category.allow_backdate,
        backdate_max_days=category.backdate_max_days,
        allow_rollover=category.allow_rollover,
        max_rollover_days=category.max_rollover_days,
        rollover_expiry_month=category.rollover_expiry_month,
        rules=parse_rule_set(category.rules_json),
        created_at=category.created_at,
        updated_at=category.updated_at,
    )


async def get_category_model(
    session: AsyncSession,
    company_id: uuid.UUID,
    category_id: uuid.UUID,
) -> LeaveCategory:
    """Fetch a category row scoped to a company."""
    result = await session.execute(
        select(LeaveCategory).where(
            col(LeaveCategory.id) == category_id,
            col(LeaveCategory.company_id) == company_id,
        )
    )
    category = result.scalar_one_or_none()
    if category is None:
        raise CategoryNotFoundError
    return category


async def _ensure_unique_name(
    session: AsyncSession,
    company_id: uuid.UUID,
    name: str,
    exclude_id: uuid.UUID | None = None,
) -> None:
    query = select(LeaveCategory.id).where(
        col(LeaveCategory.company_id) == company_id,
        col(LeaveCategory.name) == name,
    )
    if exclude_id is not None:
        query = query.where(col(LeaveCategory.id) != exclude_id)
    existing = await session.execute(query)
    if existing.first() is not None:
        raise ConflictError("Leave category with this name already exists for this company")


async def create_category(
    session: AsyncSession,
    auth: AuthContext,
    employees: EmployeeService,
    payload: CreateCategoryRequest,
    today: date | None = None,
) -> CategoryResponse:
    """Create a category and allocate this year's quotas to every active employee."""
    await _ensure_unique_name(session, auth.company_id, payload.name)

    today = today or date.today()
    data = payload.model_dump(exclude={"rules"})
    category = LeaveCategory(
        company_id=auth.company_id,
        rules_json=dump_rule_set(payload.rules),
        **data,
    )
    session.add(category)
    await session.flush()

    await write_audit_log(
        session,
        company_id=auth.company_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.CATEGORY,
        entity_id=category.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(category),
    )

    if category.has_quota and category.is_active:
        active = await employees.list_active_employees(auth.company_id)
        await allocate_category_quotas(session, auth.user_id, category, active, today.year, today)

    await session.commit()
    await session.refresh(category)

    logger.info("Leave category %s (%s) created by %s", category.id, category.name, auth.user_id)
    return build_category_response(category)


async def get_category(
    session: AsyncSession,
    company_id: uuid.UUID,
    category_id: uuid.UUID,
) -> CategoryResponse:
    category = await get_category_model(session, company_id, category_id)
    return build_category_response(category)


async def list_categories(
    session: AsyncSession,
    company_id: uuid.UUID,
    *,
    active_only: bool = False,
    offset: int = 0,
    limit: int = 50,
) -> CategoryListResponse:
    """List a company's leave categories by name."""
    filters = [col(LeaveCategory.company_id) == company_id]
    if active_only:
        filters.append(col(LeaveCategory.is_active).is_(True))

    count_result = await session.execute(select(func.count()).select_from(LeaveCategory).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveCategory).where(*filters).order_by(col(LeaveCategory.name)).offset(offset).limit(limit)
    )
    categories = list(result.scalars().all())
    return CategoryListResponse(items=[build_category_response(c) for c in categories], total=total)


async def update_category(
    session: AsyncSession,
    auth: AuthContext,
    category_id: uuid.UUID,
    payload: UpdateCategoryRequest,
) -> CategoryResponse:
    """Apply a partial update.

    Existing ledger entries keep their balances; use quota recalculation to
    apply changed rules to them.
    """
    category = await get_category_model(session, auth.company_id, category_id)
    changes = payload.model_dump(exclude_unset=True, exclude={"rules"})

    if "name" in changes and changes["name"] != category.name:
        await _ensure_unique_name(session, auth.company_id, changes["name"], exclude_id=category.id)

    before = model_to_audit_dict(category)
    for field_name, value in changes.items():
        setattr(category, field_name, value)
    if payload.rules is not None:
        category.rules_json = dump_rule_set(payload.rules)
    category.updated_at = now_utc()
    await session.flush()

    await write_audit_log(
        session,
        company_id=auth.company_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.CATEGORY,
        entity_id=category.id,
        action=AuditAction.UPDATE,
        before_json=before,
        after_json=model_to_audit_dict(category),
    )

    await session.commit()
    await session.refresh(category)
    return build_category_response(category)


async def deactivate_category(
    session: AsyncSession,
    auth: AuthContext,
    category_id: uuid.UUID,
) -> CategoryResponse:
    """Stop new requests against a category. Existing requests and quotas are kept."""
    category = await get_category_model(session, auth.company_id, category_id)
    if not category.is_active:
        return build_category_response(category)

    before = model_to_audit_dict(category)
    category.is_active = False
    category.updated_at = now_utc()
    await session.flush()

    await write_audit_log(
        session,
        company_id=auth.company_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.CATEGORY,
        entity_id=category.id,
        action=AuditAction.UPDATE,
        before_json=before,
        after_json=model_to_audit_dict(category),
    )

    await session.commit()
    await session.refresh(category)
    return build_category_response(category)
