from decimal import Decimal

import pytest

from money import (
    InvalidAmount,
    from_minor_units,
    percentage,
    reaches_percent,
    to_decimal,
    to_minor_units,
)


def test_to_decimal_normalizes_to_two_places():
    assert to_decimal("12.5") == Decimal("12.50")
    assert str(to_decimal(7)) == "7.00"
    assert str(to_decimal(Decimal("0.1"))) == "0.10"


def test_to_decimal_rejects_floats_and_bools():
    with pytest.raises(InvalidAmount):
        to_decimal(0.1)
    with pytest.raises(InvalidAmount):
        to_decimal(True)


def test_to_decimal_rejects_sub_cent_precision():
    with pytest.raises(InvalidAmount):
        to_decimal("10.001")


def test_to_decimal_rejects_garbage_and_non_finite():
    with pytest.raises(InvalidAmount):
        to_decimal("twelve")
    with pytest.raises(InvalidAmount):
        to_decimal("NaN")
    with pytest.raises(InvalidAmount):
        to_decimal(Decimal("Infinity"))


def test_minor_units_are_exact():
    assert to_minor_units("0.10") + to_minor_units("0.20") == to_minor_units("0.30")
    assert to_minor_units("-200.00") == -20_000
    assert from_minor_units(95_000) == Decimal("950.00")
    assert str(from_minor_units(5)) == "0.05"


def test_percentage_rounds_half_up_and_handles_zero_whole():
    assert percentage(Decimal("1700"), Decimal("2000")) == Decimal("85.00")
    assert percentage(Decimal("1"), Decimal("3")) == Decimal("33.33")
    assert percentage(Decimal("2"), Decimal("3")) == Decimal("66.67")
    assert percentage(Decimal("5"), Decimal("0")) == Decimal("0.00")


def test_reaches_percent_compares_the_exact_ratio():
    assert percentage(Decimal("1599.99"), Decimal("2000")) == Decimal("80.00")
    assert reaches_percent(Decimal("1599.99"), Decimal("2000"), 80) is False
    assert reaches_percent(Decimal("1600.00"), Decimal("2000"), 80) is True
    assert reaches_percent(Decimal("749.99"), Decimal("1000"), Decimal("75")) is False
    assert reaches_percent(Decimal("0"), Decimal("100"), 0) is True
    assert reaches_percent(Decimal("5"), Decimal("0"), 0) is False
