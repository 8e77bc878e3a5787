import logging
from datetime import date

from models import Frequency
from recurrence import add_months, calculate_next_date, upcoming_occurrences


def test_add_months_clamps_to_month_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)


def test_calculate_next_date_monthly_leap_and_non_leap():
    assert calculate_next_date(date(2024, 1, 31), Frequency.monthly) == date(2024, 2, 29)
    assert calculate_next_date(date(2023, 1, 31), Frequency.monthly) == date(2023, 2, 28)


def test_calculate_next_date_quarterly_and_yearly():
    assert calculate_next_date(date(2024, 11, 30), Frequency.quarterly) == date(
        2025, 2, 28
    )
    assert calculate_next_date(date(2024, 2, 29), Frequency.yearly) == date(2025, 2, 28)


def test_calculate_next_date_custom_days():
    assert calculate_next_date(date(2024, 1, 1), Frequency.custom, 45) == date(
        2024, 2, 15
    )


def test_custom_without_days_falls_back_to_monthly(caplog):
    with caplog.at_level(logging.WARNING, logger="recurrence"):
        next_date = calculate_next_date(date(2024, 1, 31), Frequency.custom, None)
    assert next_date == date(2024, 2, 29)
    assert "custom_frequency_fallback" in caplog.text


def test_upcoming_occurrences_measure_from_anchor():
    dates = upcoming_occurrences(date(2024, 1, 31), Frequency.monthly, count=3)
    # Clamping in February must not pull March back to the 29th.
    assert dates == [date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]


def test_upcoming_occurrences_custom():
    dates = upcoming_occurrences(date(2024, 1, 1), Frequency.custom, 10, count=2)
    assert dates == [date(2024, 1, 11), date(2024, 1, 21)]
