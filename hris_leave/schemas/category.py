# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Literal, Self

from pydantic import BaseModel, Field, model_validator

from hris_leave.models.enums import AccrualMethod, DeductionType

# ---------------------------------------------------------------------------
# Eligibility rules, one shape per rule set type
# ---------------------------------------------------------------------------


class TenureRule(BaseModel):
    """Matches when ``min_months <= tenure < max_months``."""

    min_months: int | None = Field(default=None, ge=0)
    max_months: int | None = Field(default=None, ge=0)
    quota: float = Field(ge=0)

    @model_validator(mode="after")
    def _validate_bounds(self) -> Self:
        if self.min_months is not None and self.max_months is not None and self.min_months >= self.max_months:
            msg = "min_months must be less than max_months"
            raise ValueError(msg)
        return self


class PositionRule(BaseModel):
    position_ids: list[str] = Field(min_length=1)
    quota: float = Field(ge=0)


class GradeRule(BaseModel):
    grade_ids: list[str] = Field(min_length=1)
    quota: float = Field(ge=0)


class EmploymentTypeRule(BaseModel):
    employment_type: str = Field(min_length=1)
    quota: float = Field(ge=0)


class RuleConditions(BaseModel):
    """Conditions of a combined rule. Every condition that is set must match."""

    position_ids: list[str] = []
    grade_ids: list[str] = []
    employment_type: str | None = None
    min_tenure_months: int | None = Field(default=None, ge=0)
    max_tenure_months: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _validate_bounds(self) -> Self:
        if (
            self.min_tenure_months is not None
            and self.max_tenure_months is not None
            and self.min_tenure_months >= self.max_tenure_months
        ):
            msg = "min_tenure_months must be less than max_tenure_months"
            raise ValueError(msg)
        return self


class CombinedRule(BaseModel):
    conditions: RuleConditions
    quota: float = Field(ge=0)


# ---------------------------------------------------------------------------
# Rule sets (discriminated union on ``type``)
# ---------------------------------------------------------------------------


class FixedRuleSet(BaseModel):
    """Everyone gets ``default_quota``."""

    type: Literal["fixed"] = "fixed"
    default_quota: float = Field(default=0, ge=0)


class TenureRuleSet(BaseModel):
    type: Literal["tenure"] = "tenure"
    default_quota: float = Field(default=0, ge=0)
    rules: list[TenureRule] = []


class PositionRuleSet(BaseModel):
    type: Literal["position"] = "position"
    default_quota: float = Field(default=0, ge=0)
    rules: list[PositionRule] = []


class GradeRuleSet(BaseModel):
    type: Literal["grade"] = "grade"
    default_quota: float = Field(default=0, ge=0)
    rules: list[GradeRule] = []


class EmploymentTypeRuleSet(BaseModel):
    type: Literal["employment_type"] = "employment_type"
    default_quota: float = Field(default=0, ge=0)
    rules: list[EmploymentTypeRule] = []


class CombinedRuleSet(BaseModel):
    type: Literal["combined"] = "combined"
    default_quota: float = Field(default=0, ge=0)
    rules: list[CombinedRule] = []


EligibilityRuleSet = Annotated[
    FixedRuleSet | TenureRuleSet | PositionRuleSet | GradeRuleSet | EmploymentTypeRuleSet | CombinedRuleSet,
    Field(discriminator="type"),
]

# ---------------------------------------------------------------------------
# API request / response schemas
# ---------------------------------------------------------------------------


class _CategoryRules(BaseModel):
    """Request, quota and rollover rules shared by create and response schemas."""

    is_active: bool = True
    requires_approval: bool = True
    requires_attachment: bool = False
    attachment_required_after_days: int | None = Field(default=None, ge=0)
    has_quota: bool = True
    accrual_method: AccrualMethod = AccrualMethod.YEARLY
    deduction_type: DeductionType = DeductionType.WORKING_DAYS
    allow_half_day: bool = False
    max_days_per_request: int | None = Field(default=None, gt=0)
    min_notice_days: int | None = Field(default=None, ge=0)
    max_advance_days: int | None = Field(default=None, ge=0)
    allow_backdate: bool = False
    backdate_max_days: int | None = Field(default=None, ge=0)
    allow_rollover: bool = False
    max_rollover_days: int | None = Field(default=None, ge=0)
    rollover_expiry_month: int | None = Field(default=None, ge=1, le=12)


class CreateCategoryRequest(_CategoryRules):
    """Request body for creating a leave category."""

    name: str = Field(min_length=1, max_length=255)
    code: str | None = Field(default=None, max_length=50)
    description: str | None = None
    color: str | None = Field(default=None, max_length=20)
    rules: EligibilityRuleSet = Field(default_factory=FixedRuleSet)

    @model_validator(mode="after")
    def _validate_quota_settings(self) -> Self:
        if not self.has_quota and self.accrual_method != AccrualMethod.NONE:
            self.accrual_method = AccrualMethod.NONE
        if self.has_quota and self.accrual_method == AccrualMethod.NONE:
            msg = "accrual_method 'none' requires has_quota to be false"
            raise ValueError(msg)
        return self


# Columns that may be omitted from an update but never cleared.
_REQUIRED_ON_UPDATE = frozenset(
    {
        "name",
        "is_active",
        "requires_approval",
        "requires_attachment",
        "allow_half_day",
        "deduction_type",
        "allow_backdate",
        "allow_rollover",
        "rules",
    }
)


class UpdateCategoryRequest(BaseModel):
    """Partial update of a leave category. Unset fields are left unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    code: str | None = Field(default=None, max_length=50)
    description: str | None = None
    color: str | None = Field(default=None, max_length=20)
    is_active: bool | None = None
    requires_approval: bool | None = None
    requires_attachment: bool | None = None
    attachment_required_after_days: int | None = Field(default=None, ge=0)
    allow_half_day: bool | None = None
    deduction_type: DeductionType | None = None
    max_days_per_request: int | None = Field(default=None, gt=0)
    min_notice_days: int | None = Field(default=None, ge=0)
    max_advance_days: int | None = Field(default=None, ge=0)
    allow_backdate: bool | None = None
    backdate_max_days: int | None = Field(default=None, ge=0)
    allow_rollover: bool | None = None
    max_rollover_days: int | None = Field(default=None, ge=0)
    rollover_expiry_month: int | None = Field(default=None, ge=1, le=12)
    rules: EligibilityRuleSet | None = None

    @model_validator(mode="after")
    def _reject_null_required_fields(self) -> Self:
        nulled = sorted(f for f in _REQUIRED_ON_UPDATE if f in self.model_fields_set and getattr(self, f) is None)
        if nulled:
            msg = f"Fields cannot be null: {', '.join(nulled)}"
            raise ValueError(msg)
        return self


class CategoryResponse(_CategoryRules):
    """Response schema for a leave category."""

    id: uuid.UUID
    company_id: uuid.UUID
    name: str
    code: str | None
    description: str | None
    color: str | None
    rules: EligibilityRuleSet
    created_at: datetime
    updated_at: datetime


class CategoryListResponse(BaseModel):
    """List of leave categories."""

    items: list[CategoryResponse]
    total: int
