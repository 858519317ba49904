"""Eligibility evaluator.

Decides whether an employee may use a leave category and how many days per
year apply, from the category's rule set. Rule sets are a tagged union (see
``hris_leave.schemas.category``); ``evaluate_rules`` is the only place that
dispatches on the shape.

Rules are tried in list order and the first match wins. When nothing matches,
the rule set's ``default_quota`` applies if it is positive; otherwise the
employee is not eligible and the result says why.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter

from hris_leave.models.enums import AccrualMethod, IneligibilityReason
from hris_leave.schemas.category import (
    CombinedRule,
    CombinedRuleSet,
    EligibilityRuleSet,
    EmploymentTypeRuleSet,
    FixedRuleSet,
    GradeRuleSet,
    PositionRuleSet,
    TenureRuleSet,
)
from hris_leave.services.accrual import accrued_quota, tenure_months

if TYPE_CHECKING:
    from datetime import date

    from hris_leave.models.category import LeaveCategory
    from hris_leave.services.employee import EmployeeInfo

_rule_set_adapter: TypeAdapter[EligibilityRuleSet] = TypeAdapter(EligibilityRuleSet)

# Upper tenure bound used when a rule leaves ``max_months`` open.
_UNBOUNDED_MONTHS = 999_999


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of evaluating a rule set for one employee."""

    eligible: bool
    quota: float = 0.0
    reason: IneligibilityReason | None = None

    @classmethod
    def granted(cls, quota: float) -> EligibilityResult:
        return cls(eligible=True, quota=quota)

    @classmethod
    def denied(cls, reason: IneligibilityReason) -> EligibilityResult:
        return cls(eligible=False, reason=reason)


def parse_rule_set(rules_json: dict[str, Any] | None) -> EligibilityRuleSet:
    """Load a stored rule set. Categories saved without rules are ``fixed`` at 0 days."""
    if not rules_json:
        return FixedRuleSet()
    return _rule_set_adapter.validate_python(rules_json)


def dump_rule_set(rule_set: EligibilityRuleSet) -> dict[str, Any]:
    return rule_set.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Matchers
# ---------------------------------------------------------------------------


def _tenure_in_range(tenure: int, min_months: int | None, max_months: int | None) -> bool:
    lower = min_months if min_months is not None else 0
    upper = max_months if max_months is not None else _UNBOUNDED_MONTHS
    return lower <= tenure < upper


def _matches_conditions(employee: EmployeeInfo, rule: CombinedRule, tenure: int) -> bool:
    conditions = rule.conditions
    if conditions.position_ids and employee.position_id not in conditions.position_ids:
        return False
    if conditions.grade_ids and (employee.grade_id is None or employee.grade_id not in conditions.grade_ids):
        return False
    if conditions.employment_type is not None and employee.employment_type != conditions.employment_type:
        return False
    if conditions.min_tenure_months is not None or conditions.max_tenure_months is not None:
        return _tenure_in_range(tenure, conditions.min_tenure_months, conditions.max_tenure_months)
    return True


def _first_match(rule_set: EligibilityRuleSet, employee: EmployeeInfo, as_of: date) -> float | None:
    """Quota of the first matching rule, or None."""
    if isinstance(rule_set, TenureRuleSet):
        tenure = tenure_months(employee.hire_date, as_of)
        for rule in rule_set.rules:
            if _tenure_in_range(tenure, rule.min_months, rule.max_months):
                return rule.quota
    elif isinstance(rule_set, PositionRuleSet):
        for rule in rule_set.rules:
            if employee.position_id in rule.position_ids:
                return rule.quota
    elif isinstance(rule_set, GradeRuleSet):
        for rule in rule_set.rules:
            if employee.grade_id in rule.grade_ids:
                return rule.quota
    elif isinstance(rule_set, EmploymentTypeRuleSet):
        for rule in rule_set.rules:
            if employee.employment_type == rule.employment_type:
                return rule.quota
    elif isinstance(rule_set, CombinedRuleSet):
        tenure = tenure_months(employee.hire_date, as_of)
        for combined in rule_set.rules:
            if _matches_conditions(employee, combined, tenure):
                return combined.quota
    return None


_NO_MATCH_REASONS: dict[type[Any], IneligibilityReason] = {
    TenureRuleSet: IneligibilityReason.INSUFFICIENT_TENURE,
    PositionRuleSet: IneligibilityReason.POSITION_NOT_ELIGIBLE,
    GradeRuleSet: IneligibilityReason.GRADE_NOT_ELIGIBLE,
    EmploymentTypeRuleSet: IneligibilityReason.EMPLOYMENT_TYPE_NOT_ELIGIBLE,
    CombinedRuleSet: IneligibilityReason.COMBINED_REQUIREMENTS_NOT_MET,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def evaluate_rules(employee: EmployeeInfo, rule_set: EligibilityRuleSet, as_of: date) -> EligibilityResult:
    """Resolve the annual quota ``rule_set`` grants ``employee`` on ``as_of``."""
    if isinstance(rule_set, FixedRuleSet):
        return EligibilityResult.granted(rule_set.default_quota)

    if isinstance(rule_set, GradeRuleSet) and employee.grade_id is None:
        return EligibilityResult.denied(IneligibilityReason.NO_GRADE_ASSIGNED)

    quota = _first_match(rule_set, employee, as_of)
    if quota is not None:
        return EligibilityResult.granted(quota)

    if rule_set.default_quota > 0:
        return EligibilityResult.granted(rule_set.default_quota)

    if not rule_set.rules:
        return EligibilityResult.denied(IneligibilityReason.NO_MATCHING_RULE)
    return EligibilityResult.denied(_NO_MATCH_REASONS[type(rule_set)])


def check_eligibility(employee: EmployeeInfo, category: LeaveCategory, as_of: date) -> EligibilityResult:
    """Allocation-time eligibility: is the category usable and how large is the grant.

    Whether any balance is left is decided separately, at request admission.
    """
    if not category.is_active:
        return EligibilityResult.denied(IneligibilityReason.CATEGORY_INACTIVE)
    return evaluate_rules(employee, parse_rule_set(category.rules_json), as_of)


def annual_to_ledger(
    category: LeaveCategory,
    employee: EmployeeInfo,
    annual_quota: float,
    as_of: date,
) -> tuple[int, int]:
    """Split an annual figure into ``(opening_balance, earned_quota)`` whole days.

    Monthly accrual earns progressively, so nothing is granted upfront.
    """
    if category.accrual_method == AccrualMethod.MONTHLY:
        return 0, int(accrued_quota(employee.hire_date, annual_quota, as_of))
    return int(annual_quota), 0
