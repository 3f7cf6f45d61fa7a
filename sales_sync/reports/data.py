"""Read-side sales reports. Every report lists every active store, with zeros where there is no data."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence

import sqlalchemy as sa
from dateutil.relativedelta import relativedelta

from sales_sync import completeness
from sales_sync.aggregates import ZERO, money
from sales_sync.dates import iter_days, parse_year_month, validate_date_range
from sales_sync.db import session_scope
from sales_sync.exceptions import ValidationError
from sales_sync.json_logger import JsonLogger, log_event
from sales_sync.models import DailySale, MonthlySale, YearlySale
from sales_sync.report_source import MAX_STORE_CODES, DailyTotalsRow
from sales_sync.stores import StoreInfo, index_by_code, normalize_store_codes
from sales_sync.sync.common import StoreDirectory
from sales_sync.sync.daily import DailyTotalsSource
from sales_sync.sync.yearly import MIN_YEAR

REPORT_HISTORY_YEARS = 5
PERCENT_SCALE = Decimal("0.0001")
HUNDRED = Decimal("100")


@dataclass
class DailyReportRow:
    store_id: int
    store_code: str
    store_name: str
    danfe: Decimal = ZERO
    pdv: Decimal = ZERO
    exchange: Decimal = ZERO
    total: Decimal = ZERO


@dataclass
class ShareReportRow:
    store_id: int
    store_code: str
    store_name: str
    total: Decimal = ZERO
    percentage_of_total: Decimal = ZERO


@dataclass
class StoreDayRow:
    store_id: int
    store_code: str
    store_name: str
    report_date: date
    danfe: Decimal = ZERO
    pdv: Decimal = ZERO
    exchange: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.danfe + self.pdv - self.exchange


def validate_report_range(start: date, end: date, *, today: date) -> None:
    validate_date_range(start, end)
    oldest = today - relativedelta(years=REPORT_HISTORY_YEARS)
    if start < oldest:
        raise ValidationError(f"start date cannot be before {oldest}")
    latest = today + timedelta(days=1)
    if end > latest:
        raise ValidationError(f"end date cannot be after {latest}")


def validate_year_range(start_year: int, end_year: int, *, current_year: int) -> None:
    for label, value in (("start year", start_year), ("end year", end_year)):
        if value < MIN_YEAR or value > current_year + 1:
            raise ValidationError(f"{label} must be between {MIN_YEAR} and {current_year + 1}; got {value}")
    if end_year < start_year:
        raise ValidationError(f"end year {end_year} must not be before start year {start_year}")


def apply_percentages(rows: List[ShareReportRow], *, logger: Optional[JsonLogger] = None) -> List[ShareReportRow]:
    """Set each row's share of the grand total, in percent with four decimals before scaling."""

    grand_total = sum((row.total for row in rows), ZERO)
    if grand_total == ZERO:
        if logger is not None and rows:
            log_event(logger=logger, phase="report", status="warn", message="grand total is zero; no percentages")
        return rows
    for row in rows:
        row.percentage_of_total = (row.total / grand_total).quantize(PERCENT_SCALE, rounding=ROUND_HALF_UP) * HUNDRED
    return rows


def _by_total_desc(rows: List[ShareReportRow]) -> List[ShareReportRow]:
    return sorted(rows, key=lambda row: (-row.total, row.store_name))


def _fill_per_store(rows, stores: Sequence[StoreInfo], zero_factory, *, logger: Optional[JsonLogger], source: str):
    return completeness.fill(
        rows,
        [store.store_id for store in stores],
        zero_factory,
        key=lambda row: row.store_id,
        sort_key=lambda row: row.store_name,
        logger=logger,
        source=source,
    )


async def daily_report(
    *,
    database_url: str,
    directory: StoreDirectory,
    start: date,
    end: date,
    today: date,
    logger: Optional[JsonLogger] = None,
) -> List[DailyReportRow]:
    """Sum persisted daily aggregates per store over ``[start, end]``."""

    validate_report_range(start, end, today=today)
    stmt = (
        sa.select(
            DailySale.store_id,
            sa.func.coalesce(sa.func.sum(DailySale.danfe), 0).label("danfe"),
            sa.func.coalesce(sa.func.sum(DailySale.pdv), 0).label("pdv"),
            sa.func.coalesce(sa.func.sum(DailySale.exchange), 0).label("exchange"),
            sa.func.coalesce(sa.func.sum(DailySale.total), 0).label("total"),
        )
        .where(DailySale.sale_date >= start, DailySale.sale_date <= end)
        .group_by(DailySale.store_id)
    )
    async with session_scope(database_url) as session:
        result = await session.execute(stmt)
        sums = {row["store_id"]: row for row in result.mappings()}

    stores = await directory.list_active()
    actual = [
        DailyReportRow(
            store_id=store.store_id,
            store_code=store.code,
            store_name=store.name,
            danfe=money(sums[store.store_id]["danfe"]),
            pdv=money(sums[store.store_id]["pdv"]),
            exchange=money(sums[store.store_id]["exchange"]),
            total=money(sums[store.store_id]["total"]),
        )
        for store in stores
        if store.store_id in sums
    ]
    by_id = {store.store_id: store for store in stores}
    return _fill_per_store(
        actual,
        stores,
        lambda store_id: DailyReportRow(
            store_id=store_id, store_code=by_id[store_id].code, store_name=by_id[store_id].name
        ),
        logger=logger,
        source="daily_report",
    )


async def _share_report(
    *,
    database_url: str,
    directory: StoreDirectory,
    model,
    condition,
    logger: Optional[JsonLogger],
    source: str,
) -> List[ShareReportRow]:
    stmt = (
        sa.select(model.store_id, sa.func.coalesce(sa.func.sum(model.total), 0).label("total"))
        .where(condition)
        .group_by(model.store_id)
    )
    async with session_scope(database_url) as session:
        result = await session.execute(stmt)
        totals = {row["store_id"]: money(row["total"]) for row in result.mappings()}

    stores = await directory.list_active()
    by_id = {store.store_id: store for store in stores}
    actual = [
        ShareReportRow(store_id=store.store_id, store_code=store.code, store_name=store.name, total=totals[store.store_id])
        for store in stores
        if store.store_id in totals
    ]
    filled = _fill_per_store(
        actual,
        stores,
        lambda store_id: ShareReportRow(
            store_id=store_id, store_code=by_id[store_id].code, store_name=by_id[store_id].name
        ),
        logger=logger,
        source=source,
    )
    return _by_total_desc(apply_percentages(filled, logger=logger))


async def monthly_report(
    *,
    database_url: str,
    directory: StoreDirectory,
    start_year_month: str,
    end_year_month: str,
    logger: Optional[JsonLogger] = None,
) -> List[ShareReportRow]:
    start = parse_year_month(start_year_month, field="start year-month")
    end = parse_year_month(end_year_month, field="end year-month")
    if end < start:
        raise ValidationError(f"end year-month {end} must not be before {start}")
    return await _share_report(
        database_url=database_url,
        directory=directory,
        model=MonthlySale,
        condition=sa.and_(MonthlySale.year_month >= start, MonthlySale.year_month <= end),
        logger=logger,
        source="monthly_report",
    )


async def yearly_report(
    *,
    database_url: str,
    directory: StoreDirectory,
    start_year: int,
    end_year: int,
    current_year: int,
    logger: Optional[JsonLogger] = None,
) -> List[ShareReportRow]:
    validate_year_range(start_year, end_year, current_year=current_year)
    return await _share_report(
        database_url=database_url,
        directory=directory,
        model=YearlySale,
        condition=sa.and_(YearlySale.year >= start_year, YearlySale.year <= end_year),
        logger=logger,
        source="yearly_report",
    )


async def _persisted_store_days(
    database_url: str, stores: Sequence[StoreInfo], start: date, end: date
) -> List[StoreDayRow]:
    by_id = {store.store_id: store for store in stores}
    stmt = sa.select(
        DailySale.store_id,
        DailySale.sale_date,
        DailySale.danfe,
        DailySale.pdv,
        DailySale.exchange,
    ).where(
        DailySale.store_id.in_(list(by_id)),
        DailySale.sale_date >= start,
        DailySale.sale_date <= end,
    )
    async with session_scope(database_url) as session:
        result = await session.execute(stmt)
        rows = result.mappings().all()
    return [
        StoreDayRow(
            store_id=row["store_id"],
            store_code=by_id[row["store_id"]].code,
            store_name=by_id[row["store_id"]].name,
            report_date=row["sale_date"],
            danfe=money(row["danfe"]),
            pdv=money(row["pdv"]),
            exchange=money(row["exchange"]),
        )
        for row in rows
    ]


def _live_store_days(rows: Sequence[DailyTotalsRow], stores: Sequence[StoreInfo]) -> List[StoreDayRow]:
    by_code = index_by_code(stores)
    output: List[StoreDayRow] = []
    for row in rows:
        store = by_code.get(row.store_code)
        if store is None:
            continue
        output.append(
            StoreDayRow(
                store_id=store.store_id,
                store_code=store.code,
                store_name=store.name,
                report_date=row.report_date,
                danfe=row.danfe,
                pdv=row.pdv,
                exchange=row.exchange,
            )
        )
    return output


async def store_report_by_day(
    *,
    database_url: str,
    directory: StoreDirectory,
    report_source: DailyTotalsSource,
    store_codes: Sequence[str],
    start: date,
    end: date,
    today: date,
    logger: Optional[JsonLogger] = None,
) -> List[StoreDayRow]:
    """Per store per day amounts; one row for every requested active store and every day.

    Days before ``today`` come from the persisted daily tier; ``today`` is
    fetched live from the report source.
    """

    validate_date_range(start, end)
    if end > today:
        raise ValidationError(f"end date {end} cannot be in the future")
    codes = normalize_store_codes(store_codes)
    if not codes:
        raise ValidationError("at least one store code is required")
    if len(codes) > MAX_STORE_CODES:
        raise ValidationError(f"at most {MAX_STORE_CODES} store codes are allowed per request; got {len(codes)}")

    stores = await directory.list_active(codes)
    if not stores:
        return []

    actual: List[StoreDayRow] = []
    yesterday = today - timedelta(days=1)
    if start <= yesterday:
        actual.extend(await _persisted_store_days(database_url, stores, start, min(end, yesterday)))
    if end >= today:
        live = await report_source.fetch_daily_totals([store.code for store in stores], today, today)
        actual.extend(_live_store_days(live, stores))
    if logger is not None:
        log_event(
            logger=logger,
            phase="report",
            message="store report by day collected",
            stores=len(stores),
            rows=len(actual),
        )

    by_id: Dict[int, StoreInfo] = {store.store_id: store for store in stores}
    days = list(iter_days(start, end))
    return completeness.fill(
        actual,
        completeness.cross_keys([store.store_id for store in stores], days),
        lambda key: StoreDayRow(
            store_id=key[0], store_code=by_id[key[0]].code, store_name=by_id[key[0]].name, report_date=key[1]
        ),
        key=lambda row: (row.store_id, row.report_date),
        sort_key=lambda row: (row.store_name, row.report_date),
        logger=logger,
        source="store_report_by_day",
    )


@dataclass
class DayPivotRow:
    report_date: date
    totals_by_store: Dict[int, Decimal]

    @property
    def total(self) -> Decimal:
        return money(sum(self.totals_by_store.values(), ZERO))


def pivot_by_day(rows: Sequence[StoreDayRow]) -> List[DayPivotRow]:
    """One row per day, holding each store's total keyed by store id.

    Stores come from the input rows rather than fixed columns, so the shape
    follows whatever store set the report was run for.
    """

    by_day: Dict[date, Dict[int, Decimal]] = {}
    for row in rows:
        day = by_day.setdefault(row.report_date, {})
        day[row.store_id] = money(day.get(row.store_id, ZERO) + row.total)
    return [DayPivotRow(report_date=day, totals_by_store=by_day[day]) for day in sorted(by_day)]
