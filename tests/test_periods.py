from datetime import date

import pytest

from periods import resolve_period, trailing_months, trailing_quarters


def test_resolve_period_all_and_this_month():
    period = resolve_period(None, None, None, today=date(2024, 2, 10))
    assert period.slug == "all"

    period = resolve_period("this_month", None, None, today=date(2024, 2, 10))
    assert (period.start, period.end) == (date(2024, 2, 1), date(2024, 2, 29))


def test_resolve_period_last_month_crosses_year():
    period = resolve_period("last_month", None, None, today=date(2025, 1, 15))
    assert (period.start, period.end) == (date(2024, 12, 1), date(2024, 12, 31))


def test_resolve_period_custom_requires_ordered_dates():
    with pytest.raises(ValueError):
        resolve_period("custom", "2024-03-01", None)
    with pytest.raises(ValueError):
        resolve_period("custom", "2024-03-10", "2024-03-01")
    period = resolve_period("custom", "2024-03-01", "2024-03-10")
    assert period.end == date(2024, 3, 10)


def test_trailing_months_are_oldest_first():
    periods = trailing_months(date(2025, 2, 14), 6)
    assert [p.slug for p in periods] == ["Sep", "Oct", "Nov", "Dec", "Jan", "Feb"]
    assert periods[0].start == date(2024, 9, 1)
    assert periods[-1].end == date(2025, 2, 28)


def test_trailing_quarters():
    periods = trailing_quarters(date(2025, 3, 20), 4)
    assert [p.slug for p in periods] == ["Q2", "Q3", "Q4", "Q1"]
    assert periods[0].start == date(2024, 4, 1)
    assert periods[-1].end == date(2025, 3, 31)
