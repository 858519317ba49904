"""Accrual calculator: pro-rates an annual quota over the months worked so far.

Pure functions. The as-of date is always passed in; nothing here reads the clock.
"""

from __future__ import annotations

from datetime import date


def _months_between(start: date, end: date) -> int:
    """Calendar month delta, ignoring the day of month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def tenure_months(hire_date: date, as_of: date) -> int:
    """Whole months of service on ``as_of``.

    A month only counts once its day-of-month anniversary has been reached,
    so hire 2023-05-20 gives 11 months on 2024-05-19 and 12 on 2024-05-20.
    """
    months = _months_between(hire_date, as_of)
    if as_of.day < hire_date.day:
        months -= 1
    return max(months, 0)


def accrual_reference_date(hire_date: date, as_of: date) -> date:
    """Jan 1 of the as-of year, or the hire date when hired during that year."""
    year_start = date(as_of.year, 1, 1)
    return max(hire_date, year_start)


def accrued_months(hire_date: date, as_of: date) -> int:
    """Months earned by ``as_of``, counting the reference month itself."""
    reference = accrual_reference_date(hire_date, as_of)
    if as_of < reference:
        return 0
    return _months_between(reference, as_of) + 1


def accrued_quota(hire_date: date, annual_quota: float, as_of: date) -> float:
    """Quota earned so far this year under monthly accrual, capped at ``annual_quota``.

    >>> accrued_quota(date(2024, 3, 15), 12, date(2024, 9, 1))
    7.0
    """
    if annual_quota <= 0:
        return 0.0
    earned = annual_quota / 12 * accrued_months(hire_date, as_of)
    return min(earned, float(annual_quota))
