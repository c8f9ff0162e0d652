from datetime import date

import pytest

from periods import (
    DateRange,
    month_key,
    months_between,
    resolve_date_range,
    shift_months,
    trailing_window,
)


def test_resolve_date_range_accepts_missing_bounds() -> None:
    assert resolve_date_range(None, "") == DateRange(None, None)
    assert resolve_date_range("2024-01-01", None) == DateRange(date(2024, 1, 1), None)


def test_resolve_date_range_accepts_timestamps() -> None:
    assert resolve_date_range("2024-01-01T00:00:00Z", "2024-01-31T23:59:59Z") == (
        DateRange(date(2024, 1, 1), date(2024, 1, 31))
    )


def test_resolve_date_range_keeps_inverted_range() -> None:
    date_range = resolve_date_range("2024-02-01", "2024-01-01")
    assert date_range.is_empty


@pytest.mark.parametrize(
    "value", ["yesterday", "2024-13-01", "2024-02-30", "2024-01-15garbage"]
)
def test_resolve_date_range_rejects_garbage(value: str) -> None:
    with pytest.raises(ValueError):
        resolve_date_range(value, None)


def test_shift_months_clamps_to_month_end() -> None:
    assert shift_months(date(2024, 3, 31), -1) == date(2024, 2, 29)
    assert shift_months(date(2024, 8, 31), -6) == date(2024, 2, 29)
    assert shift_months(date(2024, 1, 15), -2) == date(2023, 11, 15)


def test_trailing_window_spans_n_plus_one_calendar_months() -> None:
    window = trailing_window(date(2024, 2, 29), 2)

    assert window == DateRange(date(2023, 12, 29), date(2024, 2, 29))
    assert months_between(window.start, window.end) == [
        (2023, 12),
        (2024, 1),
        (2024, 2),
    ]


def test_trailing_window_requires_positive_months() -> None:
    with pytest.raises(ValueError):
        trailing_window(date(2024, 2, 29), 0)


@pytest.mark.parametrize("months", [1_000_000_000_000, 10**20])
def test_trailing_window_rejects_months_beyond_the_calendar(months: int) -> None:
    with pytest.raises(ValueError, match="out of range"):
        trailing_window(date(2024, 2, 29), months)


def test_month_key_is_zero_padded() -> None:
    assert month_key(2024, 3) == "2024-03"
