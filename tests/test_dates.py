from datetime import date

import pytest

from stepengine.dates import add_months, format_date, resolve_date

TODAY = date(2025, 1, 31)


@pytest.mark.parametrize(
    "raw, pattern, expected",
    [
        ("25", "M/d/yyyy", "2/25/2025"),
        ("1 month", "M/d/yyyy", "2/28/2025"),
        ("2 years", "yyyy-MM-dd", "2027-01-31"),
        ("3 days from today", "dd/MM/yyyy", "03/02/2025"),
        ("05-03-2025", "M/d/yyyy", "3/5/2025"),
        ("2025-03-05", "dd-MMM-yyyy", "05-Mar-2025"),
        ("05-Mar-2025", "MMMM d, yyyy", "March 5, 2025"),
    ],
)
def test_resolve_date(raw, pattern, expected):
    assert resolve_date(raw, pattern, today=TODAY) == expected


def test_unresolvable_input_is_returned_unchanged():
    assert resolve_date("next tuesday", "M/d/yyyy", today=TODAY) == "next tuesday"
    assert resolve_date("", "M/d/yyyy", today=TODAY) == ""


def test_add_months_clamps_to_month_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)


def test_format_date_tokens():
    value = date(2025, 3, 5)
    assert format_date(value, "d/M/yy") == "5/3/25"
    assert format_date(value, "EEE dd.MM.yyyy") == "Wed 05.03.2025"


def test_relative_years_clamp_leap_day():
    assert resolve_date("1 year", "yyyy-MM-dd", today=date(2024, 2, 29)) == "2025-02-28"
