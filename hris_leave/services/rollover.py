"""Year rollover, rollover expiration and monthly accrual refresh.

Rollover: runs on Jan 1 to open the new year's ledger entries and carry
unused days forward where the category allows it.
Expiration: runs daily and forfeits carried days left unused past their
expiry date.
Accrual refresh: runs on the 1st of each month and re-derives earned days
for monthly-accrual categories.
"""

from __future__ import annotations

import logging
import uuid
from calendar import monthrange
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from hris_leave.exceptions import NegativeQuotaError
from hris_leave.models.category import LeaveCategory
from hris_leave.models.enums import AccrualMethod, AuditAction, AuditEntityType
from hris_leave.models.quota import LeaveQuota
from hris_leave.services.audit import SYSTEM_ACTOR, model_to_audit_dict, write_audit_log
from hris_leave.services.eligibility import annual_to_ledger, check_eligibility
from hris_leave.services.quota import _as_of_for_year, _touch, allocate_category_quotas

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from hris_leave.services.employee import EmployeeInfo, EmployeeService

logger = logging.getLogger(__name__)


@dataclass
class BatchRunResult:
    """Summary of a batch run."""

    target_date: date
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def rollover_expiry_date(year: int, month: int | None) -> date | None:
    """Last day of ``month`` in ``year``; None when carried days never expire."""
    if month is None:
        return None
    _, last_day = monthrange(year, month)
    return date(year, month, last_day)


def rollover_amount(previous: LeaveQuota, max_rollover_days: int | None) -> int:
    """Whole unused days of ``previous`` that may be carried forward."""
    unused = int(max(previous.available, 0))
    if max_rollover_days is not None:
        unused = min(unused, max_rollover_days)
    return unused


async def _quota_categories(
    session: AsyncSession,
    company_id: uuid.UUID | None,
    accrual_method: AccrualMethod | None = None,
) -> list[LeaveCategory]:
    filters = [
        col(LeaveCategory.is_active).is_(True),
        col(LeaveCategory.has_quota).is_(True),
    ]
    if company_id is not None:
        filters.append(col(LeaveCategory.company_id) == company_id)
    if accrual_method is not None:
        filters.append(col(LeaveCategory.accrual_method) == accrual_method.value)
    result = await session.execute(
        select(LeaveCategory).where(*filters).order_by(col(LeaveCategory.company_id), col(LeaveCategory.name))
    )
    return list(result.scalars().all())


async def _previous_entries(
    session: AsyncSession,
    category_id: uuid.UUID,
    year: int,
) -> dict[uuid.UUID, LeaveQuota]:
    result = await session.execute(
        select(LeaveQuota).where(
            col(LeaveQuota.category_id) == category_id,
            col(LeaveQuota.year) == year,
        )
    )
    return {q.employee_id: q for q in result.scalars().all()}


# ---------------------------------------------------------------------------
# Year rollover
# ---------------------------------------------------------------------------


async def _open_category_year(
    session: AsyncSession,
    category: LeaveCategory,
    staff: list[EmployeeInfo],
    target_year: int,
    today: date,
) -> int:
    """Allocate one category's ``target_year`` entries and carry days into them."""
    created = await allocate_category_quotas(session, SYSTEM_ACTOR, category, staff, target_year, today)
    if not created or not category.allow_rollover:
        return len(created)

    previous = await _previous_entries(session, category.id, target_year - 1)
    expiry = rollover_expiry_date(target_year, category.rollover_expiry_month)
    for quota in created:
        prev = previous.get(quota.employee_id)
        if prev is None:
            continue
        carried = rollover_amount(prev, category.max_rollover_days)
        if carried <= 0:
            continue
        quota.rollover_quota = carried
        quota.rollover_expiry_date = expiry
        _touch(quota)
        await write_audit_log(
            session,
            company_id=category.company_id,
            actor_id=SYSTEM_ACTOR,
            entity_type=AuditEntityType.QUOTA,
            entity_id=quota.id,
            action=AuditAction.ROLLOVER,
            reason=f"Carried {carried} days from {target_year - 1}",
            after_json=model_to_audit_dict(quota),
        )

    await session.flush()
    return len(created)


async def run_year_rollover(
    session: AsyncSession,
    employees: EmployeeService,
    target_year: int | None = None,
    today: date | None = None,
    *,
    company_id: uuid.UUID | None = None,
) -> BatchRunResult:
    """Open ``target_year`` ledger entries for every active quota category.

    New entries of rollover categories receive the employee's unused days of
    the previous year, capped at ``max_rollover_days``. Entries that already
    exist are left untouched, so the run is idempotent. Each category runs in
    its own savepoint: a failed category leaves no entries behind and is
    picked up again by the next run.
    """
    today = today or date.today()
    target_year = target_year or today.year
    result = BatchRunResult(target_date=date(target_year, 1, 1))

    categories = await _quota_categories(session, company_id)
    staff: dict[uuid.UUID, list[EmployeeInfo]] = {}

    for category in categories:
        result.processed += 1
        category_id = category.id
        try:
            if category.company_id not in staff:
                staff[category.company_id] = await employees.list_active_employees(category.company_id)
            async with session.begin_nested():
                created = await _open_category_year(
                    session, category, staff[category.company_id], target_year, today
                )
        except Exception:
            logger.exception("Rollover failed for category=%s year=%s", category_id, target_year)
            result.errors += 1
            continue

        if created:
            result.updated += created
        else:
            result.skipped += 1

    await session.commit()
    logger.info(
        "Year rollover %s: %d categories, %d entries created, %d skipped, %d errors",
        target_year,
        result.processed,
        result.updated,
        result.skipped,
        result.errors,
    )
    return result


# ---------------------------------------------------------------------------
# Rollover expiration
# ---------------------------------------------------------------------------


async def _expire_entry(session: AsyncSession, quota: LeaveQuota) -> int:
    before = model_to_audit_dict(quota)
    forfeited = int(min(quota.rollover_quota, max(quota.available, 0)))
    quota.rollover_quota -= forfeited
    quota.rollover_expiry_date = None
    _touch(quota)

    await write_audit_log(
        session,
        company_id=quota.company_id,
        actor_id=SYSTEM_ACTOR,
        entity_type=AuditEntityType.QUOTA,
        entity_id=quota.id,
        action=AuditAction.EXPIRE,
        reason=f"Forfeited {forfeited} carried days",
        before_json=before,
        after_json=model_to_audit_dict(quota),
    )
    await session.flush()
    return forfeited


async def run_rollover_expiration(
    session: AsyncSession,
    today: date | None = None,
    *,
    company_id: uuid.UUID | None = None,
) -> BatchRunResult:
    """Forfeit carried days still unused after their expiry date.

    Never forfeits more than is available, so pending and used days stay
    covered. Processed entries have their expiry date cleared.
    """
    today = today or date.today()
    result = BatchRunResult(target_date=today)

    filters = [
        col(LeaveQuota.rollover_expiry_date).is_not(None),
        col(LeaveQuota.rollover_expiry_date) < today,
        col(LeaveQuota.rollover_quota) > 0,
    ]
    if company_id is not None:
        filters.append(col(LeaveQuota.company_id) == company_id)

    rows = await session.execute(
        select(LeaveQuota).where(*filters).with_for_update().execution_options(populate_existing=True)
    )

    for quota in rows.scalars().all():
        result.processed += 1
        quota_id = quota.id
        try:
            async with session.begin_nested():
                forfeited = await _expire_entry(session, quota)
        except Exception:
            logger.exception("Rollover expiration failed for quota=%s", quota_id)
            result.errors += 1
            continue

        if forfeited <= 0:
            result.skipped += 1
        else:
            result.updated += 1

    await session.commit()
    return result


# ---------------------------------------------------------------------------
# Monthly accrual refresh
# ---------------------------------------------------------------------------


async def _refresh_entry(
    session: AsyncSession,
    employees: EmployeeService,
    category: LeaveCategory,
    quota: LeaveQuota,
    as_of: date,
) -> bool:
    """Re-derive one entry's earned days. Returns whether it changed."""
    employee = await employees.get_employee(category.company_id, quota.employee_id)
    if employee is None:
        return False

    eligibility = check_eligibility(employee, category, as_of)
    if not eligibility.eligible:
        return False

    _, earned = annual_to_ledger(category, employee, eligibility.quota, as_of)
    if earned == quota.earned_quota:
        return False

    if quota.available + (earned - quota.earned_quota) < 0:
        raise NegativeQuotaError

    before = model_to_audit_dict(quota)
    quota.earned_quota = earned
    _touch(quota)
    await write_audit_log(
        session,
        company_id=quota.company_id,
        actor_id=SYSTEM_ACTOR,
        entity_type=AuditEntityType.QUOTA,
        entity_id=quota.id,
        action=AuditAction.RECALCULATE,
        reason="Monthly accrual",
        before_json=before,
        after_json=model_to_audit_dict(quota),
    )
    await session.flush()
    return True


async def refresh_monthly_accruals(
    session: AsyncSession,
    employees: EmployeeService,
    today: date | None = None,
    *,
    company_id: uuid.UUID | None = None,
) -> BatchRunResult:
    """Re-derive ``earned_quota`` of this year's monthly-accrual entries.

    Entries whose new value would leave ``available`` negative are left
    unchanged and counted as errors.
    """
    today = today or date.today()
    result = BatchRunResult(target_date=today)
    as_of = _as_of_for_year(today.year, today)

    categories = await _quota_categories(session, company_id, AccrualMethod.MONTHLY)

    for category in categories:
        rows = await session.execute(
            select(LeaveQuota)
            .where(
                col(LeaveQuota.category_id) == category.id,
                col(LeaveQuota.year) == today.year,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        for quota in rows.scalars().all():
            result.processed += 1
            quota_id = quota.id
            try:
                async with session.begin_nested():
                    changed = await _refresh_entry(session, employees, category, quota, as_of)
            except NegativeQuotaError:
                logger.warning("Accrual refresh would make quota=%s negative, left unchanged", quota_id)
                result.errors += 1
                continue
            except Exception:
                logger.exception("Accrual refresh failed for quota=%s", quota_id)
                result.errors += 1
                continue

            if changed:
                result.updated += 1
            else:
                result.skipped += 1

    await session.commit()
    return result
