from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

if TYPE_CHECKING:
    from hris_leave.models.enums import IneligibilityReason


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str
    detail: str | None = None
    status_code: int


class AppError(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Validation / lookup
# ---------------------------------------------------------------------------


class ValidationError(AppError):
    """Malformed or missing input."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


class NotFoundError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND)


class CategoryNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("Leave category not found")


class QuotaNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("Leave quota not found")


class LeaveRequestNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("Leave request not found")


class EmployeeNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("Employee not found")


class ForbiddenError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN)


class ConflictError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------


class IneligibleError(AppError):
    """The employee may not use the leave category; ``reason`` says why."""

    def __init__(self, reason: IneligibilityReason, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or reason.describe(), status_code=status.HTTP_403_FORBIDDEN)


# ---------------------------------------------------------------------------
# Policy violations
# ---------------------------------------------------------------------------


class PolicyViolationError(AppError):
    """A leave request breaks one of its category's request rules."""

    def __init__(self, message: str, status_code: int = status.HTTP_422_UNPROCESSABLE_ENTITY) -> None:
        super().__init__(message, status_code=status_code)


class BackdateNotAllowedError(PolicyViolationError):
    def __init__(self) -> None:
        super().__init__("Backdated leave is not allowed for this leave category")


class BackdateTooOldError(PolicyViolationError):
    def __init__(self, max_days: int) -> None:
        super().__init__(f"Backdated leave may start at most {max_days} days ago")


class InsufficientNoticeError(PolicyViolationError):
    def __init__(self, min_days: int) -> None:
        super().__init__(f"Leave must be requested at least {min_days} days in advance")


class TooFarInAdvanceError(PolicyViolationError):
    def __init__(self, max_days: int) -> None:
        super().__init__(f"Leave may be requested at most {max_days} days in advance")


class ExceedsMaxDaysError(PolicyViolationError):
    def __init__(self, max_days: int) -> None:
        super().__init__(f"Leave duration exceeds the maximum of {max_days} days per request")


class OverlappingLeaveError(PolicyViolationError):
    def __init__(self) -> None:
        super().__init__(
            "Leave dates overlap with an existing request",
            status_code=status.HTTP_409_CONFLICT,
        )


class AttachmentRequiredError(PolicyViolationError):
    def __init__(self) -> None:
        super().__init__("An attachment is required for this leave request")


class AttachmentTooLargeError(PolicyViolationError):
    def __init__(self, max_bytes: int) -> None:
        super().__init__(f"Attachment exceeds the maximum size of {max_bytes} bytes")


class AttachmentTypeNotAllowedError(PolicyViolationError):
    def __init__(self, allowed: list[str]) -> None:
        super().__init__(f"Attachment type not allowed. Allowed: {', '.join(allowed)}")


class HalfDayNotAllowedError(PolicyViolationError):
    def __init__(self) -> None:
        super().__init__("Half-day leave is not allowed for this leave category")


class NoWorkingDaysError(PolicyViolationError):
    def __init__(self) -> None:
        super().__init__("Request covers no working days")


# ---------------------------------------------------------------------------
# Ledger / workflow
# ---------------------------------------------------------------------------


class InsufficientQuotaError(AppError):
    def __init__(self, available: float, requested: float) -> None:
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient leave quota: {requested:g} days requested, {available:g} available",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )


class NegativeQuotaError(AppError):
    def __init__(self) -> None:
        super().__init__(
            "Operation would result in negative available quota",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )


class AlreadyProcessedError(AppError):
    def __init__(self) -> None:
        super().__init__("Leave request already processed", status_code=status.HTTP_409_CONFLICT)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            detail=exc.message,
            status_code=exc.status_code,
        ).model_dump(),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error="ValidationError",
            detail=str(exc.errors()),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        ).model_dump(),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(AppError, _app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)  # type: ignore[arg-type]
