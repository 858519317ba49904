from __future__ import annotations

import enum


class AccrualMethod(enum.StrEnum):
    """How a category's annual quota is granted."""

    YEARLY = "yearly"
    MONTHLY = "monthly"
    DAILY = "daily"
    NONE = "none"


class DeductionType(enum.StrEnum):
    """Which days of a request are debited from quota."""

    WORKING_DAYS = "working_days"
    CALENDAR_DAYS = "calendar_days"


class EmploymentType(enum.StrEnum):
    PERMANENT = "permanent"
    PROBATION = "probation"
    CONTRACT = "contract"
    INTERNSHIP = "internship"
    FREELANCE = "freelance"


class DurationType(enum.StrEnum):
    """Portion of the boundary days a leave request covers."""

    FULL_DAY = "full_day"
    HALF_DAY_MORNING = "half_day_morning"
    HALF_DAY_AFTERNOON = "half_day_afternoon"

    @property
    def is_half_day(self) -> bool:
        return self is not DurationType.FULL_DAY


class RequestStatus(enum.StrEnum):
    """State machine for leave requests."""

    WAITING_APPROVAL = "waiting_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class IneligibilityReason(enum.StrEnum):
    """Why an employee may not use a leave category."""

    CATEGORY_INACTIVE = "category_inactive"
    NO_MATCHING_RULE = "no_matching_rule"
    INSUFFICIENT_TENURE = "insufficient_tenure"
    POSITION_NOT_ELIGIBLE = "position_not_eligible"
    NO_GRADE_ASSIGNED = "no_grade_assigned"
    GRADE_NOT_ELIGIBLE = "grade_not_eligible"
    EMPLOYMENT_TYPE_NOT_ELIGIBLE = "employment_type_not_eligible"
    COMBINED_REQUIREMENTS_NOT_MET = "combined_requirements_not_met"
    NO_QUOTA_AVAILABLE = "no_quota_available"

    def describe(self) -> str:
        return _REASON_MESSAGES[self]


_REASON_MESSAGES = {
    IneligibilityReason.CATEGORY_INACTIVE: "Leave category is not active",
    IneligibilityReason.NO_MATCHING_RULE: "Employee is not eligible for this leave category",
    IneligibilityReason.INSUFFICIENT_TENURE: "Insufficient tenure for this leave category",
    IneligibilityReason.POSITION_NOT_ELIGIBLE: "Employee position is not eligible for this leave category",
    IneligibilityReason.NO_GRADE_ASSIGNED: "Employee has no grade assigned",
    IneligibilityReason.GRADE_NOT_ELIGIBLE: "Employee grade is not eligible for this leave category",
    IneligibilityReason.EMPLOYMENT_TYPE_NOT_ELIGIBLE: (
        "Employee employment type is not eligible for this leave category"
    ),
    IneligibilityReason.COMBINED_REQUIREMENTS_NOT_MET: (
        "Employee does not meet the combined eligibility requirements"
    ),
    IneligibilityReason.NO_QUOTA_AVAILABLE: "No quota available for this leave category",
}


class NotificationType(enum.StrEnum):
    LEAVE_REQUEST = "leave_request"
    LEAVE_APPROVED = "leave_approved"
    LEAVE_REJECTED = "leave_rejected"
    LEAVE_CANCELLED = "leave_cancelled"


class AuditEntityType(enum.StrEnum):
    """Entity type recorded in the audit log."""

    CATEGORY = "CATEGORY"
    QUOTA = "QUOTA"
    REQUEST = "REQUEST"


class AuditAction(enum.StrEnum):
    """Action recorded in the audit log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ADJUST = "ADJUST"
    RECALCULATE = "RECALCULATE"
    ROLLOVER = "ROLLOVER"
    EXPIRE = "EXPIRE"
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    CANCEL = "CANCEL"
