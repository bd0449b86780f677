from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from promlib.months import MonthYear, month_range, months_between


def test_parse():
    assert MonthYear.parse("2024-01") == MonthYear(2024, 1)
    assert MonthYear.parse(" 2023-9 ") == MonthYear(2023, 9)


@pytest.mark.parametrize("text", ["", "2024", "24-01", "2024/01", "2024-13", "2024-00"])
def test_parse_rejects(text):
    with pytest.raises(ValueError):
        MonthYear.parse(text)


def test_month_bounds():
    with pytest.raises(ValidationError):
        MonthYear(2024, 13)


def test_str():
    assert str(MonthYear(2024, 3)) == "2024-03"
    assert str(MonthYear(999, 12)) == "0999-12"


def test_of():
    assert MonthYear.of(datetime(2024, 2, 29, 12, tzinfo=UTC)) == MonthYear(2024, 2)


def test_next_month():
    assert MonthYear(2024, 1).next_month() == MonthYear(2024, 2)
    assert MonthYear(2024, 12).next_month() == MonthYear(2025, 1)


def test_ordering():
    assert MonthYear(2023, 12) < MonthYear(2024, 1)
    assert MonthYear(2024, 2) > MonthYear(2024, 1)
    assert sorted([MonthYear(2024, 3), MonthYear(2023, 5)]) == [MonthYear(2023, 5), MonthYear(2024, 3)]


def test_days():
    assert MonthYear(2023, 2).days() == 28
    assert MonthYear(2024, 2).days() == 29
    assert MonthYear(2024, 4).days() == 30
    assert MonthYear(2024, 1).days() == 31


def test_window():
    month = MonthYear(2023, 2)

    assert month.month_start() == datetime(2023, 2, 1, tzinfo=UTC)
    assert month.month_end() == datetime(2023, 2, 28, 23, 59, 59, 999000, tzinfo=UTC)
    assert month.step() == timedelta(seconds=28 * 86400)


def test_month_range():
    assert list(month_range(MonthYear(2023, 11), MonthYear(2024, 2))) == [
        MonthYear(2023, 11),
        MonthYear(2023, 12),
        MonthYear(2024, 1),
        MonthYear(2024, 2),
    ]


def test_month_range_reversed():
    assert list(month_range(MonthYear(2024, 2), MonthYear(2023, 12))) == [
        MonthYear(2023, 12),
        MonthYear(2024, 1),
        MonthYear(2024, 2),
    ]


def test_month_range_single():
    assert list(month_range(MonthYear(2024, 5), MonthYear(2024, 5))) == [MonthYear(2024, 5)]


def test_months_between():
    assert months_between(MonthYear(2024, 1), MonthYear(2024, 1)) == 1
    assert months_between(MonthYear(2023, 11), MonthYear(2024, 2)) == 4
    assert months_between(MonthYear(2024, 2), MonthYear(2023, 11)) == 4
