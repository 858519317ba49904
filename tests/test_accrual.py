"""Tests for the accrual calculator and tenure counting."""

from __future__ import annotations

from datetime import date

import pytest

from hris_leave.services.accrual import (
    accrual_reference_date,
    accrued_months,
    accrued_quota,
    tenure_months,
)

# ---------------------------------------------------------------------------
# tenure_months
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("hire_date", "as_of", "expected"),
    [
        (date(2023, 5, 20), date(2024, 5, 19), 11),
        (date(2023, 5, 20), date(2024, 5, 20), 12),
        (date(2022, 12, 15), date(2024, 6, 15), 18),
        (date(2024, 1, 31), date(2024, 2, 29), 0),
        (date(2024, 1, 31), date(2024, 3, 31), 2),
    ],
)
def test_tenure_months(hire_date: date, as_of: date, expected: int) -> None:
    assert tenure_months(hire_date, as_of) == expected


def test_tenure_months_before_hire_is_zero() -> None:
    assert tenure_months(date(2025, 3, 1), date(2024, 12, 1)) == 0


# ---------------------------------------------------------------------------
# accrued_quota
# ---------------------------------------------------------------------------


def test_hired_this_year_counts_from_hire_month() -> None:
    hire = date(2024, 3, 15)
    as_of = date(2024, 9, 1)

    assert accrual_reference_date(hire, as_of) == hire
    assert accrued_months(hire, as_of) == 7  # March through September
    assert accrued_quota(hire, 12, as_of) == pytest.approx(7.0)


def test_hired_in_earlier_year_counts_from_january() -> None:
    hire = date(2019, 8, 1)
    as_of = date(2024, 4, 10)

    assert accrual_reference_date(hire, as_of) == date(2024, 1, 1)
    assert accrued_quota(hire, 12, as_of) == pytest.approx(4.0)


def test_accrual_is_capped_at_annual_quota() -> None:
    assert accrued_quota(date(2010, 1, 1), 12, date(2024, 12, 31)) == pytest.approx(12.0)


def test_fractional_monthly_rate() -> None:
    # 15 days a year accrue 1.25 a month.
    assert accrued_quota(date(2015, 1, 1), 15, date(2024, 2, 1)) == pytest.approx(2.5)


def test_as_of_before_hire_accrues_nothing() -> None:
    assert accrued_quota(date(2024, 6, 1), 12, date(2024, 5, 31)) == 0.0


def test_zero_annual_quota_accrues_nothing() -> None:
    assert accrued_quota(date(2020, 1, 1), 0, date(2024, 6, 1)) == 0.0


def test_accrual_is_deterministic_for_injected_date() -> None:
    first = accrued_quota(date(2024, 3, 15), 12, date(2024, 9, 1))
    second = accrued_quota(date(2024, 3, 15), 12, date(2024, 9, 1))
    assert first == second
