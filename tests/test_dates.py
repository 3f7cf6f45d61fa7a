from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from sales_sync.dates import (
    count_months,
    daily_sync_date,
    months_in_range,
    monthly_sync_window,
    parse_year_month,
    weekly_correction_window,
)
from sales_sync.exceptions import ValidationError


def _clock(year: int, month: int, day: int):
    return lambda: datetime(year, month, day, 1, 0, tzinfo=timezone.utc)


def test_daily_sync_date_is_yesterday_across_year_boundary() -> None:
    assert daily_sync_date(_clock(2025, 1, 1)) == date(2024, 12, 31)


@pytest.mark.parametrize(
    ("today", "expected"),
    [
        ((2025, 3, 15), (date(2025, 3, 1), date(2025, 3, 31))),
        ((2025, 3, 1), (date(2025, 2, 1), date(2025, 2, 28))),
        ((2024, 3, 1), (date(2024, 2, 1), date(2024, 2, 29))),
        ((2024, 2, 29), (date(2024, 2, 1), date(2024, 2, 29))),
        ((2025, 1, 1), (date(2024, 12, 1), date(2024, 12, 31))),
    ],
)
def test_monthly_sync_window(today, expected) -> None:
    assert monthly_sync_window(_clock(*today)) == expected


def test_weekly_correction_window_covers_seven_days_ending_yesterday() -> None:
    assert weekly_correction_window(_clock(2025, 3, 9)) == (date(2025, 3, 2), date(2025, 3, 8))


def test_count_months_is_inclusive() -> None:
    assert count_months(date(2025, 1, 31), date(2025, 3, 1)) == 3
    assert count_months(date(2024, 11, 5), date(2025, 2, 5)) == 4
    assert count_months(date(2025, 3, 1), date(2025, 3, 1)) == 1
    assert months_in_range(date(2024, 12, 15), date(2025, 1, 2)) == ["2024-12", "2025-01"]


def test_parse_year_month_rejects_bad_values() -> None:
    assert parse_year_month(" 2025-03 ", field="start") == "2025-03"
    with pytest.raises(ValidationError):
        parse_year_month("2025-13", field="start")
    with pytest.raises(ValidationError):
        parse_year_month("", field="start")
