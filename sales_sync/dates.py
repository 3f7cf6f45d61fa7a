"""Timezone-aware date helpers shared by the sync engines, reports and scheduler."""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Callable, Iterator, List, Tuple
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from sales_sync.exceptions import ValidationError

Clock = Callable[[], datetime]

YEAR_MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def get_timezone(name: str | None = None) -> ZoneInfo:
    """Return the pipeline timezone.

    Falls back to the configured ``PIPELINE_TIMEZONE`` when no name is
    given, so every "today" in the pipeline uses the same calendar.
    """

    if name is None:
        from sales_sync.config import get_config

        name = get_config().pipeline_timezone
    return ZoneInfo(name)


def aware_now(tz: ZoneInfo | None = None) -> datetime:
    """Return ``datetime.now`` in the pipeline timezone."""

    return datetime.now(tz or get_timezone())


def system_clock(tz: ZoneInfo | None = None) -> Clock:
    return lambda: aware_now(tz)


def daily_sync_date(clock: Clock) -> date:
    """Return the default daily sync date (T-1)."""

    return clock().date() - timedelta(days=1)


def monthly_sync_window(clock: Clock) -> Tuple[date, date]:
    """Return the default monthly sync window.

    On the first day of a month the whole previous month is re-aggregated,
    otherwise the current month from day 1 to its last day.
    """

    today = clock().date()
    if today.day == 1:
        start = today - relativedelta(months=1)
    else:
        start = today.replace(day=1)
    end = start + relativedelta(months=1) - timedelta(days=1)
    return start, end


def weekly_correction_window(clock: Clock) -> Tuple[date, date]:
    """Return the seven days ending yesterday."""

    end = daily_sync_date(clock)
    return end - timedelta(days=6), end


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def year_month(value: date) -> str:
    return value.strftime("%Y-%m")


def months_in_range(start: date, end: date) -> List[str]:
    """Return every ``YYYY-MM`` between ``start`` and ``end`` inclusive."""

    months: List[str] = []
    cursor = start.replace(day=1)
    while cursor <= end:
        months.append(year_month(cursor))
        cursor += relativedelta(months=1)
    return months


def count_months(start: date, end: date) -> int:
    if end < start:
        return 0
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


def parse_year_month(value: str, *, field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field} is required")
    if not YEAR_MONTH_PATTERN.match(cleaned):
        raise ValidationError(f"{field} must use the YYYY-MM format; got {value!r}")
    return cleaned


def validate_date_range(start: date | None, end: date | None) -> None:
    if start is None:
        raise ValidationError("start date is required")
    if end is None:
        raise ValidationError("end date is required")
    if start > end:
        raise ValidationError(f"start date {start} must not be after end date {end}")
