from __future__ import annotations

from collections.abc import Iterator
from datetime import date, timedelta
from typing import TYPE_CHECKING

from hris_leave.models.enums import DeductionType, DurationType

if TYPE_CHECKING:
    from hris_leave.models.category import LeaveCategory

_ONE_DAY = timedelta(days=1)
_HALF_DAY = 0.5


def is_working_day(day: date) -> bool:
    """Monday to Friday. Company holidays are not considered."""
    return day.weekday() < 5


def iter_working_dates(start_date: date, end_date: date) -> Iterator[date]:
    """Yield every weekday from ``start_date`` to ``end_date`` inclusive."""
    current = start_date
    while current <= end_date:
        if is_working_day(current):
            yield current
        current += _ONE_DAY


def calculate_total_days(start_date: date, end_date: date, duration_type: DurationType) -> float:
    """Inclusive calendar span. A single half-day request counts 0.5."""
    days = (end_date - start_date).days + 1
    if days == 1 and duration_type.is_half_day:
        return _HALF_DAY
    return float(days)


def calculate_working_days(start_date: date, end_date: date, duration_type: DurationType) -> float:
    """Weekdays in the span; for half-day requests the first and last day count 0.5 each."""
    total = 0.0
    for day in iter_working_dates(start_date, end_date):
        if duration_type.is_half_day and day in (start_date, end_date):
            total += _HALF_DAY
        else:
            total += 1.0
    return total


def calculate_deduction_days(category: LeaveCategory, total_days: float, working_days: float) -> float:
    """Days debited from quota under the category's deduction type."""
    if category.deduction_type == DeductionType.CALENDAR_DAYS:
        return total_days
    return working_days
