"""Tests for the quota ledger: allocation, reserve/consume/release, adjust,
recalculate, delete, and the quota endpoints.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import select
from sqlmodel import col

from hris_leave.exceptions import (
    ConflictError,
    InsufficientQuotaError,
    NegativeQuotaError,
    QuotaNotFoundError,
    ValidationError,
)
from hris_leave.models.audit import AuditLog
from hris_leave.models.category import LeaveCategory
from hris_leave.models.enums import AccrualMethod, AuditAction
from hris_leave.models.quota import LeaveQuota
from hris_leave.models.request import LeaveRequest
from hris_leave.schemas.auth import AuthContext
from hris_leave.schemas.category import FixedRuleSet, TenureRule, TenureRuleSet
from hris_leave.schemas.quota import AdjustQuotaRequest
from hris_leave.services import quota as quota_service
from hris_leave.services.eligibility import dump_rule_set
from hris_leave.services.employee import EmployeeInfo

if TYPE_CHECKING:
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from hris_leave.services.employee import InMemoryEmployeeService

COMPANY_ID = uuid.uuid4()
ADMIN_ID = uuid.uuid4()
TODAY = date(2024, 6, 15)

ADMIN = AuthContext(company_id=COMPANY_ID, user_id=ADMIN_ID, role="admin")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _employee(**overrides: Any) -> EmployeeInfo:
    data: dict[str, Any] = {
        "id": uuid.uuid4(),
        "company_id": COMPANY_ID,
        "full_name": "Test Employee",
        "hire_date": date(2020, 1, 6),
        "position_id": "engineer",
    }
    data.update(overrides)
    return EmployeeInfo(**data)


async def _category(session: AsyncSession, rules: Any = None, **overrides: Any) -> LeaveCategory:
    data: dict[str, Any] = {
        "company_id": COMPANY_ID,
        "name": f"Leave {uuid.uuid4().hex[:6]}",
        "rules_json": dump_rule_set(rules or FixedRuleSet(default_quota=12)),
    }
    data.update(overrides)
    category = LeaveCategory(**data)
    session.add(category)
    await session.commit()
    return category


async def _allocate(
    session: AsyncSession,
    category: LeaveCategory,
    employee: EmployeeInfo,
    year: int = 2024,
) -> LeaveQuota:
    created = await quota_service.allocate_category_quotas(session, ADMIN_ID, category, [employee], year, TODAY)
    await session.commit()
    assert len(created) == 1
    return created[0]


async def _audit_entries(session: AsyncSession, entity_id: uuid.UUID, action: AuditAction) -> list[AuditLog]:
    result = await session.execute(
        select(AuditLog).where(
            col(AuditLog.entity_id) == entity_id,
            col(AuditLog.action) == action.value,
        )
    )
    return list(result.scalars().all())


def _assert_conserved(quota: Any) -> None:
    granted = quota.opening_balance + quota.earned_quota + quota.rollover_quota + quota.adjustment_quota
    assert granted == pytest.approx(quota.used_quota + quota.pending_quota + quota.available_quota)


# ---------------------------------------------------------------------------
# Allocation
# ---------------------------------------------------------------------------


async def test_allocation_creates_yearly_entry(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    quota = await _allocate(db_session, category, _employee())

    assert quota.year == 2024
    assert quota.opening_balance == 12
    assert quota.earned_quota == 0
    assert quota.available == 12

    audits = await _audit_entries(db_session, quota.id, AuditAction.CREATE)
    assert len(audits) == 1


async def test_allocation_monthly_accrual_earns_to_date(db_session: AsyncSession) -> None:
    category = await _category(db_session, accrual_method=AccrualMethod.MONTHLY)
    quota = await _allocate(db_session, category, _employee())

    # January through June on 2024-06-15.
    assert quota.opening_balance == 0
    assert quota.earned_quota == 6


async def test_allocation_is_idempotent(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    employee = _employee()
    await _allocate(db_session, category, employee)

    again = await quota_service.allocate_category_quotas(
        db_session, ADMIN_ID, category, [employee], 2024, TODAY
    )
    await db_session.commit()
    assert again == []

    result = await db_session.execute(select(LeaveQuota).where(col(LeaveQuota.employee_id) == employee.id))
    assert len(result.scalars().all()) == 1


async def test_allocation_skips_ineligible_and_zero_quota(db_session: AsyncSession) -> None:
    tenure = TenureRuleSet(rules=[TenureRule(min_months=60, quota=20)])
    category = await _category(db_session, tenure)
    zero = await _category(db_session, FixedRuleSet(default_quota=0))
    newcomer = _employee(hire_date=date(2024, 2, 1))

    assert await quota_service.allocate_category_quotas(db_session, ADMIN_ID, category, [newcomer], 2024, TODAY) == []
    assert await quota_service.allocate_category_quotas(db_session, ADMIN_ID, zero, [newcomer], 2024, TODAY) == []


async def test_allocation_skips_category_without_quota(db_session: AsyncSession) -> None:
    category = await _category(db_session, has_quota=False, accrual_method=AccrualMethod.NONE)
    created = await quota_service.allocate_category_quotas(
        db_session, ADMIN_ID, category, [_employee()], 2024, TODAY
    )
    assert created == []


async def test_allocation_skips_other_company_employee(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    outsider = _employee(company_id=uuid.uuid4())
    created = await quota_service.allocate_category_quotas(db_session, ADMIN_ID, category, [outsider], 2024, TODAY)
    assert created == []


async def test_allocation_skips_entry_created_concurrently(
    db_session: AsyncSession,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    category = await _category(db_session)
    employee, newcomer = _employee(), _employee()
    await _allocate(db_session, category, employee)

    # Another allocation committed ``employee``'s entry after this run read the existing ids.
    async def _stale_existing_ids(*_args: Any) -> set[uuid.UUID]:
        return set()

    monkeypatch.setattr(quota_service, "_existing_employee_ids", _stale_existing_ids)

    created = await quota_service.allocate_category_quotas(
        db_session, ADMIN_ID, category, [employee, newcomer], 2024, TODAY
    )
    await db_session.commit()

    assert [q.employee_id for q in created] == [newcomer.id]
    listed = await quota_service.list_company_quotas(db_session, COMPANY_ID, 2024)
    assert listed.total == 2


async def test_assign_employee_quotas_covers_active_categories(
    db_session: AsyncSession,
    employee_service: InMemoryEmployeeService,
) -> None:
    employee = _employee()
    employee_service.seed(employee)
    await _category(db_session, name="Annual Leave")
    await _category(db_session, FixedRuleSet(default_quota=5), name="Sick Leave")
    await _category(db_session, name="Retired", is_active=False)

    response = await quota_service.assign_employee_quotas(
        db_session, ADMIN, employee_service, employee.id, 2024, TODAY
    )
    assert response.total == 2
    assert sorted(q.available_quota for q in response.items) == [5, 12]

    again = await quota_service.assign_employee_quotas(db_session, ADMIN, employee_service, employee.id, 2024, TODAY)
    assert again.total == 0


# ---------------------------------------------------------------------------
# Reserve / consume / release
# ---------------------------------------------------------------------------


async def test_reserve_consume_release_conserve_balance(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    quota = await _allocate(db_session, category, _employee())

    reserved = await quota_service.reserve_quota(db_session, ADMIN, quota.id, 5)
    assert reserved.pending_quota == 5
    assert reserved.available_quota == 7
    _assert_conserved(reserved)

    consumed = await quota_service.consume_quota(db_session, ADMIN, quota.id, 3)
    assert consumed.pending_quota == 2
    assert consumed.used_quota == 3
    _assert_conserved(consumed)

    released = await quota_service.release_quota(db_session, ADMIN, quota.id, 2)
    assert released.pending_quota == 0
    assert released.used_quota == 3
    assert released.available_quota == 9
    _assert_conserved(released)


async def test_reserve_half_day(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    quota = await _allocate(db_session, category, _employee())

    reserved = await quota_service.reserve_quota(db_session, ADMIN, quota.id, 0.5)
    assert reserved.available_quota == 11.5


async def test_reserve_beyond_available_changes_nothing(db_session: AsyncSession) -> None:
    category = await _category(db_session, FixedRuleSet(default_quota=2))
    quota = await _allocate(db_session, category, _employee())

    with pytest.raises(InsufficientQuotaError) as exc_info:
        await quota_service.reserve_quota(db_session, ADMIN, quota.id, 3)
    assert exc_info.value.available == 2
    assert exc_info.value.requested == 3

    await db_session.rollback()
    unchanged = await quota_service.get_quota(db_session, COMPANY_ID, quota.id)
    assert unchanged.pending_quota == 0
    assert unchanged.available_quota == 2


async def test_reserve_rejects_non_positive_days(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    quota = await _allocate(db_session, category, _employee())

    with pytest.raises(ValidationError):
        await quota_service.reserve_quota(db_session, ADMIN, quota.id, 0)


async def test_unknown_quota_not_found(db_session: AsyncSession) -> None:
    with pytest.raises(QuotaNotFoundError):
        await quota_service.reserve_quota(db_session, ADMIN, uuid.uuid4(), 1)


async def test_quota_is_scoped_to_company(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    quota = await _allocate(db_session, category, _employee())
    other = AuthContext(company_id=uuid.uuid4(), user_id=ADMIN_ID, role="admin")

    with pytest.raises(QuotaNotFoundError):
        await quota_service.reserve_quota(db_session, other, quota.id, 1)


async def test_consume_and_release_need_a_reservation(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    quota = await _allocate(db_session, category, _employee())
    await quota_service.reserve_quota(db_session, ADMIN, quota.id, 2)

    with pytest.raises(ValidationError):
        await quota_service.consume_quota(db_session, ADMIN, quota.id, 3)
    with pytest.raises(ValidationError):
        await quota_service.release_quota(db_session, ADMIN, quota.id, 2.5)

    await db_session.rollback()
    ledger = await quota_service.get_quota(db_session, COMPANY_ID, quota.id)
    assert ledger.pending_quota == 2
    assert ledger.used_quota == 0
    assert ledger.available_quota == 10


async def test_reserve_rereads_entry_loaded_earlier(
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    category = await _category(db_session, FixedRuleSet(default_quota=10))
    quota = await _allocate(db_session, category, _employee())
    loaded = await db_session.get(LeaveQuota, quota.id)
    assert loaded is not None
    assert loaded.pending_quota == 0

    # A second session reserves and commits while this one still holds the old copy.
    async with session_factory() as other:
        await quota_service.reserve_quota(other, ADMIN, quota.id, 8)

    with pytest.raises(InsufficientQuotaError) as exc_info:
        await quota_service.reserve_quota(db_session, ADMIN, quota.id, 8)
    assert exc_info.value.available == 2


# ---------------------------------------------------------------------------
# Adjust
# ---------------------------------------------------------------------------


async def test_adjust_positive_is_audited_with_reason(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    quota = await _allocate(db_session, category, _employee())

    adjusted = await quota_service.adjust_quota(
        db_session, ADMIN, quota.id, AdjustQuotaRequest(delta=3, reason="Overtime compensation")
    )
    assert adjusted.adjustment_quota == 3
    assert adjusted.available_quota == 15
    _assert_conserved(adjusted)

    audits = await _audit_entries(db_session, quota.id, AuditAction.ADJUST)
    assert len(audits) == 1
    assert audits[0].actor_id == ADMIN_ID
    assert audits[0].reason == "Overtime compensation"
    assert audits[0].before_json is not None
    assert audits[0].before_json["adjustment_quota"] == 0
    assert audits[0].after_json is not None
    assert audits[0].after_json["adjustment_quota"] == 3


async def test_adjust_negative_within_available(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    quota = await _allocate(db_session, category, _employee())
    await quota_service.reserve_quota(db_session, ADMIN, quota.id, 4)

    adjusted = await quota_service.adjust_quota(
        db_session, ADMIN, quota.id, AdjustQuotaRequest(delta=-8, reason="Correction")
    )
    assert adjusted.available_quota == 0


async def test_adjust_cannot_make_available_negative(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    quota = await _allocate(db_session, category, _employee())
    await quota_service.reserve_quota(db_session, ADMIN, quota.id, 4)

    with pytest.raises(NegativeQuotaError):
        await quota_service.adjust_quota(db_session, ADMIN, quota.id, AdjustQuotaRequest(delta=-9, reason="Too much"))

    await db_session.rollback()
    unchanged = await quota_service.get_quota(db_session, COMPANY_ID, quota.id)
    assert unchanged.adjustment_quota == 0
    assert await _audit_entries(db_session, quota.id, AuditAction.ADJUST) == []


# ---------------------------------------------------------------------------
# Recalculate
# ---------------------------------------------------------------------------


async def test_recalculate_applies_changed_rules(
    db_session: AsyncSession,
    employee_service: InMemoryEmployeeService,
) -> None:
    employee = _employee()
    employee_service.seed(employee)
    category = await _category(db_session)
    quota = await _allocate(db_session, category, employee)
    await quota_service.reserve_quota(db_session, ADMIN, quota.id, 2)

    category.rules_json = dump_rule_set(FixedRuleSet(default_quota=20))
    await db_session.commit()

    recalculated = await quota_service.recalculate_quota(db_session, ADMIN, employee_service, quota.id, TODAY)
    assert recalculated.opening_balance == 20
    assert recalculated.pending_quota == 2
    assert recalculated.available_quota == 18
    assert len(await _audit_entries(db_session, quota.id, AuditAction.RECALCULATE)) == 1


async def test_recalculate_ineligible_drops_to_zero(
    db_session: AsyncSession,
    employee_service: InMemoryEmployeeService,
) -> None:
    employee = _employee()
    employee_service.seed(employee)
    category = await _category(db_session)
    quota = await _allocate(db_session, category, employee)

    category.rules_json = dump_rule_set(TenureRuleSet(rules=[TenureRule(min_months=120, quota=30)]))
    await db_session.commit()

    recalculated = await quota_service.recalculate_quota(db_session, ADMIN, employee_service, quota.id, TODAY)
    assert recalculated.opening_balance == 0
    assert recalculated.available_quota == 0


async def test_recalculate_refuses_negative_result(
    db_session: AsyncSession,
    employee_service: InMemoryEmployeeService,
) -> None:
    employee = _employee()
    employee_service.seed(employee)
    category = await _category(db_session)
    quota = await _allocate(db_session, category, employee)
    await quota_service.reserve_quota(db_session, ADMIN, quota.id, 10)
    await quota_service.consume_quota(db_session, ADMIN, quota.id, 10)

    category.rules_json = dump_rule_set(FixedRuleSet(default_quota=5))
    await db_session.commit()

    with pytest.raises(NegativeQuotaError):
        await quota_service.recalculate_quota(db_session, ADMIN, employee_service, quota.id, TODAY)


# ---------------------------------------------------------------------------
# Read path and delete
# ---------------------------------------------------------------------------


async def test_list_employee_and_company_quotas(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    alice, bob = _employee(full_name="Alice"), _employee(full_name="Bob")
    await _allocate(db_session, category, alice)
    await _allocate(db_session, category, bob)
    await _allocate(db_session, category, alice, year=2023)

    mine = await quota_service.list_employee_quotas(db_session, COMPANY_ID, alice.id)
    assert mine.total == 2
    assert [q.year for q in mine.items] == [2024, 2023]

    this_year = await quota_service.list_employee_quotas(db_session, COMPANY_ID, alice.id, 2024)
    assert this_year.total == 1

    company = await quota_service.list_company_quotas(db_session, COMPANY_ID, 2024)
    assert company.total == 2


async def test_delete_unreferenced_quota(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    quota = await _allocate(db_session, category, _employee())

    await quota_service.delete_quota(db_session, ADMIN, quota.id)

    with pytest.raises(QuotaNotFoundError):
        await quota_service.get_quota(db_session, COMPANY_ID, quota.id)
    assert len(await _audit_entries(db_session, quota.id, AuditAction.DELETE)) == 1


async def test_delete_referenced_quota_conflicts(db_session: AsyncSession) -> None:
    category = await _category(db_session)
    employee = _employee()
    quota = await _allocate(db_session, category, employee)
    db_session.add(
        LeaveRequest(
            company_id=COMPANY_ID,
            employee_id=employee.id,
            category_id=category.id,
            quota_id=quota.id,
            start_date=date(2024, 7, 1),
            end_date=date(2024, 7, 1),
            total_days=1,
            working_days=1,
            deducted_days=1,
        )
    )
    await db_session.commit()

    with pytest.raises(ConflictError):
        await quota_service.delete_quota(db_session, ADMIN, quota.id)


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


def _headers(user_id: uuid.UUID, role: str) -> dict[str, str]:
    return {"X-Company-Id": str(COMPANY_ID), "X-User-Id": str(user_id), "X-Role": role}


async def test_api_allocate_and_adjust(
    async_client: AsyncClient,
    db_session: AsyncSession,
    employee_service: InMemoryEmployeeService,
) -> None:
    employee = _employee()
    employee_service.seed(employee)
    await _category(db_session)

    response = await async_client.post(
        f"/companies/{COMPANY_ID}/employees/{employee.id}/quotas",
        params={"year": 2024},
        headers=_headers(ADMIN_ID, "admin"),
    )
    assert response.status_code == 201
    quota_id = response.json()["items"][0]["id"]

    response = await async_client.post(
        f"/companies/{COMPANY_ID}/quotas/{quota_id}/adjust",
        json={"delta": 2, "reason": "Bonus days"},
        headers=_headers(ADMIN_ID, "admin"),
    )
    assert response.status_code == 200
    assert response.json()["available_quota"] == 14


async def test_api_adjust_requires_admin(
    async_client: AsyncClient,
    db_session: AsyncSession,
) -> None:
    employee = _employee()
    category = await _category(db_session)
    quota = await _allocate(db_session, category, employee)

    response = await async_client.post(
        f"/companies/{COMPANY_ID}/quotas/{quota.id}/adjust",
        json={"delta": 5, "reason": "Please"},
        headers=_headers(employee.id, "employee"),
    )
    assert response.status_code == 403
    assert response.json()["error"] == "ForbiddenError"


async def test_api_adjust_negative_returns_422(
    async_client: AsyncClient,
    db_session: AsyncSession,
) -> None:
    category = await _category(db_session)
    quota = await _allocate(db_session, category, _employee())

    response = await async_client.post(
        f"/companies/{COMPANY_ID}/quotas/{quota.id}/adjust",
        json={"delta": -13, "reason": "Correction"},
        headers=_headers(ADMIN_ID, "admin"),
    )
    assert response.status_code == 422
    assert response.json()["error"] == "NegativeQuotaError"


async def test_api_employee_sees_only_own_quotas(
    async_client: AsyncClient,
    db_session: AsyncSession,
    employee_service: InMemoryEmployeeService,
) -> None:
    category = await _category(db_session)
    alice, bob = _employee(), _employee()
    employee_service.seed(alice)
    employee_service.seed(bob)
    await _allocate(db_session, category, alice)
    bob_quota = await _allocate(db_session, category, bob)

    response = await async_client.get(
        f"/companies/{COMPANY_ID}/employees/{alice.id}/quotas",
        headers=_headers(alice.id, "employee"),
    )
    assert response.status_code == 200
    assert response.json()["total"] == 1

    response = await async_client.get(
        f"/companies/{COMPANY_ID}/employees/{bob.id}/quotas",
        headers=_headers(alice.id, "employee"),
    )
    assert response.status_code == 403

    response = await async_client.get(
        f"/companies/{COMPANY_ID}/quotas/{bob_quota.id}",
        headers=_headers(alice.id, "employee"),
    )
    assert response.status_code == 403


async def test_api_employee_with_separate_login_sees_own_quotas(
    async_client: AsyncClient,
    db_session: AsyncSession,
    employee_service: InMemoryEmployeeService,
) -> None:
    login_id = uuid.uuid4()
    employee = _employee(user_id=login_id)
    employee_service.seed(employee)
    category = await _category(db_session)
    quota = await _allocate(db_session, category, employee)

    response = await async_client.get(
        f"/companies/{COMPANY_ID}/employees/{employee.id}/quotas",
        headers=_headers(login_id, "employee"),
    )
    assert response.status_code == 200
    assert response.json()["total"] == 1

    response = await async_client.get(
        f"/companies/{COMPANY_ID}/quotas/{quota.id}",
        headers=_headers(login_id, "employee"),
    )
    assert response.status_code == 200

    # The employee record id is not a login.
    response = await async_client.get(
        f"/companies/{COMPANY_ID}/quotas/{quota.id}",
        headers=_headers(employee.id, "employee"),
    )
    assert response.status_code == 403


async def test_api_company_scope_mismatch(async_client: AsyncClient) -> None:
    response = await async_client.get(
        f"/companies/{uuid.uuid4()}/quotas",
        params={"year": 2024},
        headers=_headers(ADMIN_ID, "admin"),
    )
    assert response.status_code == 403
