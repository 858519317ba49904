"""Quota ledger: one entry per employee, category and year.

Every mutation locks the entry with ``SELECT ... FOR UPDATE`` before checking
availability, so concurrent reservations and adjustments on the same entry
serialize and none of them can push ``available`` below zero.

The ``_reserve`` / ``_consume`` / ``_release`` helpers mutate an entry the
caller has already locked and never commit; the request lifecycle uses them
inside its own transaction. The public functions wrap them in a transaction
of their own.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlmodel import col

from hris_leave.exceptions import (
    CategoryNotFoundError,
    ConflictError,
    EmployeeNotFoundError,
    InsufficientQuotaError,
    NegativeQuotaError,
    QuotaNotFoundError,
    ValidationError,
)
from hris_leave.models.base import now_utc
from hris_leave.models.category import LeaveCategory
from hris_leave.models.enums import AuditAction, AuditEntityType
from hris_leave.models.quota import LeaveQuota
from hris_leave.models.request import LeaveRequest
from hris_leave.schemas.quota import AllocationResponse, QuotaListResponse, QuotaResponse
from hris_leave.services.audit import model_to_audit_dict, write_audit_log
from hris_leave.services.eligibility import annual_to_ledger, check_eligibility

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from hris_leave.schemas.auth import AuthContext
    from hris_leave.schemas.quota import AdjustQuotaRequest
    from hris_leave.services.employee import EmployeeInfo, EmployeeService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def build_quota_response(quota: LeaveQuota) -> QuotaResponse:
    """Map a ledger entry to its response schema."""
    return QuotaResponse(
        id=quota.id,
        company_id=quota.company_id,
        employee_id=quota.employee_id,
        category_id=quota.category_id,
        year=quota.year,
        opening_balance=quota.opening_balance,
        earned_quota=quota.earned_quota,
        rollover_quota=quota.rollover_quota,
        adjustment_quota=quota.adjustment_quota,
        used_quota=quota.used_quota,
        pending_quota=quota.pending_quota,
        available_quota=quota.available,
        rollover_expiry_date=quota.rollover_expiry_date,
        created_at=quota.created_at,
        updated_at=quota.updated_at,
    )


def _as_of_for_year(year: int, today: date) -> date:
    """Evaluation date for a ledger year: today, or the nearest day of that year."""
    if year == today.year:
        return today
    if year < today.year:
        return date(year, 12, 31)
    return date(year, 1, 1)


def _touch(quota: LeaveQuota) -> None:
    quota.version += 1
    quota.updated_at = now_utc()


def _validate_days(days: float) -> None:
    if days <= 0:
        raise ValidationError("Days must be positive")


async def _get_quota_for_update(
    session: AsyncSession,
    company_id: uuid.UUID,
    quota_id: uuid.UUID,
) -> LeaveQuota:
    """Fetch a ledger entry with a FOR UPDATE lock."""
    result = await session.execute(
        select(LeaveQuota)
        .where(
            col(LeaveQuota.id) == quota_id,
            col(LeaveQuota.company_id) == company_id,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    quota = result.scalar_one_or_none()
    if quota is None:
        raise QuotaNotFoundError
    return quota


async def _find_quota_for_update(
    session: AsyncSession,
    employee_id: uuid.UUID,
    category_id: uuid.UUID,
    year: int,
) -> LeaveQuota | None:
    """Locate an employee's entry for a category and year, locking it if found."""
    result = await session.execute(
        select(LeaveQuota)
        .where(
            col(LeaveQuota.employee_id) == employee_id,
            col(LeaveQuota.category_id) == category_id,
            col(LeaveQuota.year) == year,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _reserve(quota: LeaveQuota, days: float) -> None:
    """Earmark ``days`` for a waiting request. Applies nothing if short."""
    available = quota.available
    if available < days:
        raise InsufficientQuotaError(available=available, requested=days)
    quota.pending_quota += days
    _touch(quota)


def _check_reserved(quota: LeaveQuota, days: float) -> None:
    if days > quota.pending_quota:
        raise ValidationError(f"Only {quota.pending_quota:g} days are reserved, cannot settle {days:g}")


def _consume(quota: LeaveQuota, days: float) -> None:
    """Turn a reservation into usage."""
    _check_reserved(quota, days)
    quota.pending_quota -= days
    quota.used_quota += days
    _touch(quota)


def _release(quota: LeaveQuota, days: float) -> None:
    """Drop a reservation without using it."""
    _check_reserved(quota, days)
    quota.pending_quota -= days
    _touch(quota)


async def _get_category(session: AsyncSession, company_id: uuid.UUID, category_id: uuid.UUID) -> LeaveCategory:
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


async def _existing_employee_ids(
    session: AsyncSession,
    category_id: uuid.UUID,
    year: int,
) -> set[uuid.UUID]:
    result = await session.execute(
        select(col(LeaveQuota.employee_id)).where(
            col(LeaveQuota.category_id) == category_id,
            col(LeaveQuota.year) == year,
        )
    )
    return set(result.scalars().all())


async def _create_entry(
    session: AsyncSession,
    actor_id: uuid.UUID,
    category: LeaveCategory,
    employee: EmployeeInfo,
    year: int,
    as_of: date,
) -> LeaveQuota | None:
    """Create one ledger entry if the employee is eligible for a positive quota."""
    eligibility = check_eligibility(employee, category, as_of)
    if not eligibility.eligible or eligibility.quota <= 0:
        return None

    opening, earned = annual_to_ledger(category, employee, eligibility.quota, as_of)
    if opening + earned <= 0:
        return None

    quota = LeaveQuota(
        company_id=category.company_id,
        employee_id=employee.id,
        category_id=category.id,
        year=year,
        opening_balance=opening,
        earned_quota=earned,
    )

    # A concurrent allocation may have created the entry since the existing-ids read.
    try:
        async with session.begin_nested():
            session.add(quota)
            await session.flush()
    except IntegrityError:
        logger.info("Quota already exists for employee=%s category=%s year=%s", employee.id, category.id, year)
        return None

    await write_audit_log(
        session,
        company_id=category.company_id,
        actor_id=actor_id,
        entity_type=AuditEntityType.QUOTA,
        entity_id=quota.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(quota),
    )
    return quota


# ---------------------------------------------------------------------------
# Allocation
# ---------------------------------------------------------------------------


async def allocate_category_quotas(
    session: AsyncSession,
    actor_id: uuid.UUID,
    category: LeaveCategory,
    employees: list[EmployeeInfo],
    year: int,
    today: date | None = None,
) -> list[LeaveQuota]:
    """Create ``year`` entries of ``category`` for every listed employee.

    Employees that already have an entry, are not eligible, or would get
    zero days are skipped. Safe to re-run. The caller commits.
    """
    if not category.has_quota:
        return []

    as_of = _as_of_for_year(year, today or date.today())
    existing = await _existing_employee_ids(session, category.id, year)

    created: list[LeaveQuota] = []
    for employee in employees:
        if employee.id in existing or employee.company_id != category.company_id:
            continue
        quota = await _create_entry(session, actor_id, category, employee, year, as_of)
        if quota is not None:
            created.append(quota)
            existing.add(employee.id)

    logger.info(
        "Allocated %d of %d %s quotas for category=%s",
        len(created),
        len(employees),
        year,
        category.id,
    )
    return created


async def assign_employee_quotas(
    session: AsyncSession,
    auth: AuthContext,
    employees: EmployeeService,
    employee_id: uuid.UUID,
    year: int | None = None,
    today: date | None = None,
) -> AllocationResponse:
    """Allocate a newly onboarded employee's entries across all active quota categories."""
    today = today or date.today()
    year = year or today.year

    employee = await employees.get_employee(auth.company_id, employee_id)
    if employee is None:
        raise EmployeeNotFoundError

    result = await session.execute(
        select(LeaveCategory)
        .where(
            col(LeaveCategory.company_id) == auth.company_id,
            col(LeaveCategory.is_active).is_(True),
            col(LeaveCategory.has_quota).is_(True),
        )
        .order_by(col(LeaveCategory.name))
    )
    categories = list(result.scalars().all())

    created: list[LeaveQuota] = []
    for category in categories:
        created.extend(await allocate_category_quotas(session, auth.user_id, category, [employee], year, today))

    await session.commit()
    for quota in created:
        await session.refresh(quota)
    return AllocationResponse(items=[build_quota_response(q) for q in created], total=len(created))


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------


async def get_quota(session: AsyncSession, company_id: uuid.UUID, quota_id: uuid.UUID) -> QuotaResponse:
    result = await session.execute(
        select(LeaveQuota).where(
            col(LeaveQuota.id) == quota_id,
            col(LeaveQuota.company_id) == company_id,
        )
    )
    quota = result.scalar_one_or_none()
    if quota is None:
        raise QuotaNotFoundError
    return build_quota_response(quota)


async def list_employee_quotas(
    session: AsyncSession,
    company_id: uuid.UUID,
    employee_id: uuid.UUID,
    year: int | None = None,
) -> QuotaListResponse:
    """An employee's ledger entries, optionally for one year."""
    filters = [
        col(LeaveQuota.company_id) == company_id,
        col(LeaveQuota.employee_id) == employee_id,
    ]
    if year is not None:
        filters.append(col(LeaveQuota.year) == year)

    result = await session.execute(
        select(LeaveQuota).where(*filters).order_by(col(LeaveQuota.year).desc(), col(LeaveQuota.created_at))
    )
    quotas = list(result.scalars().all())
    return QuotaListResponse(items=[build_quota_response(q) for q in quotas], total=len(quotas))


async def list_company_quotas(
    session: AsyncSession,
    company_id: uuid.UUID,
    year: int,
    category_id: uuid.UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> QuotaListResponse:
    filters = [
        col(LeaveQuota.company_id) == company_id,
        col(LeaveQuota.year) == year,
    ]
    if category_id is not None:
        filters.append(col(LeaveQuota.category_id) == category_id)

    count_result = await session.execute(select(func.count()).select_from(LeaveQuota).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(LeaveQuota)
        .where(*filters)
        .order_by(col(LeaveQuota.employee_id), col(LeaveQuota.created_at))
        .offset(offset)
        .limit(limit)
    )
    quotas = list(result.scalars().all())
    return QuotaListResponse(items=[build_quota_response(q) for q in quotas], total=total)


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------


async def reserve_quota(session: AsyncSession, auth: AuthContext, quota_id: uuid.UUID, days: float) -> QuotaResponse:
    _validate_days(days)
    quota = await _get_quota_for_update(session, auth.company_id, quota_id)
    _reserve(quota, days)
    await session.commit()
    await session.refresh(quota)
    return build_quota_response(quota)


async def consume_quota(session: AsyncSession, auth: AuthContext, quota_id: uuid.UUID, days: float) -> QuotaResponse:
    _validate_days(days)
    quota = await _get_quota_for_update(session, auth.company_id, quota_id)
    _consume(quota, days)
    await session.commit()
    await session.refresh(quota)
    return build_quota_response(quota)


async def release_quota(session: AsyncSession, auth: AuthContext, quota_id: uuid.UUID, days: float) -> QuotaResponse:
    _validate_days(days)
    quota = await _get_quota_for_update(session, auth.company_id, quota_id)
    _release(quota, days)
    await session.commit()
    await session.refresh(quota)
    return build_quota_response(quota)


async def adjust_quota(
    session: AsyncSession,
    auth: AuthContext,
    quota_id: uuid.UUID,
    payload: AdjustQuotaRequest,
) -> QuotaResponse:
    """Apply an HR correction to the adjustment bucket.

    The whole adjustment is rejected if it would leave ``available`` negative.
    """
    quota = await _get_quota_for_update(session, auth.company_id, quota_id)

    if quota.available + payload.delta < 0:
        raise NegativeQuotaError

    before = model_to_audit_dict(quota)
    old_adjustment = quota.adjustment_quota
    quota.adjustment_quota += payload.delta
    _touch(quota)
    await session.flush()

    await write_audit_log(
        session,
        company_id=auth.company_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.QUOTA,
        entity_id=quota.id,
        action=AuditAction.ADJUST,
        reason=payload.reason,
        before_json=before,
        after_json=model_to_audit_dict(quota),
    )

    logger.info(
        "Quota %s adjusted by %s (%+d): adjustment %d -> %d, reason=%r",
        quota.id,
        auth.user_id,
        payload.delta,
        old_adjustment,
        quota.adjustment_quota,
        payload.reason,
    )

    await session.commit()
    await session.refresh(quota)
    return build_quota_response(quota)


async def recalculate_quota(
    session: AsyncSession,
    auth: AuthContext,
    employees: EmployeeService,
    quota_id: uuid.UUID,
    today: date | None = None,
) -> QuotaResponse:
    """Re-derive opening and earned days from the category's current rules.

    Used, pending and adjustment buckets are left alone. An employee who no
    longer qualifies is recalculated to zero days.
    """
    quota = await _get_quota_for_update(session, auth.company_id, quota_id)
    category = await _get_category(session, auth.company_id, quota.category_id)
    employee = await employees.get_employee(auth.company_id, quota.employee_id)
    if employee is None:
        raise EmployeeNotFoundError

    as_of = _as_of_for_year(quota.year, today or date.today())
    eligibility = check_eligibility(employee, category, as_of)
    if eligibility.eligible:
        opening, earned = annual_to_ledger(category, employee, eligibility.quota, as_of)
    else:
        opening, earned = 0, 0

    delta = (opening - quota.opening_balance) + (earned - quota.earned_quota)
    if quota.available + delta < 0:
        raise NegativeQuotaError

    before = model_to_audit_dict(quota)
    old_opening, old_earned = quota.opening_balance, quota.earned_quota
    quota.opening_balance = opening
    quota.earned_quota = earned
    _touch(quota)
    await session.flush()

    await write_audit_log(
        session,
        company_id=auth.company_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.QUOTA,
        entity_id=quota.id,
        action=AuditAction.RECALCULATE,
        before_json=before,
        after_json=model_to_audit_dict(quota),
    )

    logger.info(
        "Quota %s recalculated by %s: opening %d -> %d, earned %d -> %d",
        quota.id,
        auth.user_id,
        old_opening,
        opening,
        old_earned,
        earned,
    )

    await session.commit()
    await session.refresh(quota)
    return build_quota_response(quota)


async def delete_quota(session: AsyncSession, auth: AuthContext, quota_id: uuid.UUID) -> None:
    """Delete a ledger entry that no leave request references."""
    quota = await _get_quota_for_update(session, auth.company_id, quota_id)

    count_result = await session.execute(
        select(func.count()).select_from(LeaveRequest).where(col(LeaveRequest.quota_id) == quota.id)
    )
    if count_result.scalar_one() > 0:
        raise ConflictError("Leave quota is referenced by leave requests and cannot be deleted")

    await write_audit_log(
        session,
        company_id=auth.company_id,
        actor_id=auth.user_id,
        entity_type=AuditEntityType.QUOTA,
        entity_id=quota.id,
        action=AuditAction.DELETE,
        before_json=model_to_audit_dict(quota),
    )
    await session.delete(quota)
    await session.commit()
