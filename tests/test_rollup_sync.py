from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
import sqlalchemy as sa

from conftest import fixed_clock
from sales_sync.aggregate_store import MONTHLY_TIER, YEARLY_TIER, AggregateStore
from sales_sync.db import session_scope
from sales_sync.exceptions import PersistenceError, ValidationError
from sales_sync.models import DailySale, MonthlySale, YearlySale
from sales_sync.stores import ActiveStoreDirectory
from sales_sync.sync import MonthlySyncEngine, YearlySyncEngine
from sales_sync.sync.monthly import aggregate_daily_by_month
from sales_sync.sync.yearly import aggregate_monthly_by_year


def _insert(database_url: str, model, rows: list[dict]) -> None:
    engine = sa.create_engine(database_url.replace("+aiosqlite", ""))
    with engine.begin() as connection:
        connection.execute(sa.insert(model.__table__), rows)
    engine.dispose()


def _daily_row(store_id: int, code: str, name: str, day: date, total: str) -> dict:
    return {
        "store_id": store_id,
        "store_code": code,
        "store_name": name,
        "sale_date": day,
        "danfe": Decimal(total),
        "pdv": Decimal("0"),
        "exchange": Decimal("0"),
        "total": Decimal(total),
    }


def _monthly_engine(database_url, clock, logger) -> MonthlySyncEngine:
    return MonthlySyncEngine(
        directory=ActiveStoreDirectory(database_url),
        daily_database_url=database_url,
        store=AggregateStore(MONTHLY_TIER, database_url),
        clock=clock,
        logger=logger,
    )


def _yearly_engine(database_url, clock, logger) -> YearlySyncEngine:
    return YearlySyncEngine(
        directory=ActiveStoreDirectory(database_url),
        monthly_database_url=database_url,
        store=AggregateStore(YEARLY_TIER, database_url),
        clock=clock,
        logger=logger,
    )


async def _all(database_url: str, model, order_by):
    async with session_scope(database_url) as session:
        result = await session.execute(sa.select(model).order_by(*order_by))
        return list(result.scalars())


@pytest.mark.asyncio
async def test_monthly_total_equals_sum_of_daily_totals(database_url, seed_stores, clock, log_capture) -> None:
    ids = seed_stores([("A", "Store A", True), ("B", "Store B", True)])
    _insert(
        database_url,
        DailySale,
        [
            _daily_row(ids["A"], "A", "Store A", date(2025, 2, 1), "100.10"),
            _daily_row(ids["A"], "A", "Store A", date(2025, 2, 14), "-20.05"),
            _daily_row(ids["A"], "A", "Store A", date(2025, 2, 28), "0.95"),
            _daily_row(ids["B"], "B", "Store B", date(2025, 2, 3), "7.00"),
            _daily_row(ids["A"], "A", "Store A", date(2025, 3, 1), "999.00"),
        ],
    )

    result = await _monthly_engine(database_url, clock, log_capture.logger).sync(date(2025, 2, 1), date(2025, 2, 28))

    assert (result.created, result.updated, result.stores_processed, result.months_processed) == (2, 0, 2, 1)
    rows = await _all(database_url, MonthlySale, [MonthlySale.store_id])
    assert [(row.store_id, row.year_month, Decimal(row.total)) for row in rows] == [
        (ids["A"], "2025-02", Decimal("81.00")),
        (ids["B"], "2025-02", Decimal("7.00")),
    ]


@pytest.mark.asyncio
async def test_monthly_rerun_updates_and_refreshes_store_names(database_url, seed_stores, clock, log_capture) -> None:
    ids = seed_stores([("A", "Store A", True)])
    _insert(database_url, DailySale, [_daily_row(ids["A"], "A", "Old name", date(2025, 2, 1), "10")])
    engine = _monthly_engine(database_url, clock, log_capture.logger)

    await engine.sync(date(2025, 2, 1), date(2025, 2, 28))
    _insert(database_url, DailySale, [_daily_row(ids["A"], "A", "Old name", date(2025, 2, 2), "5")])
    second = await engine.sync(date(2025, 2, 1), date(2025, 2, 28))

    assert (second.created, second.updated) == (0, 1)
    rows = await _all(database_url, MonthlySale, [MonthlySale.id])
    assert len(rows) == 1
    assert rows[0].store_name == "Store A"
    assert Decimal(rows[0].total) == Decimal("15.00")


@pytest.mark.asyncio
async def test_months_processed_counts_calendar_months_without_data(database_url, seed_stores, clock, log_capture) -> None:
    ids = seed_stores([("A", "Store A", True)])
    _insert(database_url, DailySale, [_daily_row(ids["A"], "A", "Store A", date(2025, 1, 10), "1")])

    result = await _monthly_engine(database_url, clock, log_capture.logger).sync(date(2024, 11, 15), date(2025, 2, 3))

    assert result.months_processed == 4
    assert result.created == 1


@pytest.mark.asyncio
async def test_monthly_with_no_daily_rows_returns_zero_result(database_url, clock, log_capture) -> None:
    result = await _monthly_engine(database_url, clock, log_capture.logger).sync(date(2025, 2, 1), date(2025, 2, 28))

    assert (result.created, result.updated, result.stores_processed, result.months_processed) == (0, 0, 0, 1)


@pytest.mark.asyncio
async def test_yearly_sync_without_monthly_rows_is_a_no_op(database_url, clock, log_capture) -> None:
    result = await _yearly_engine(database_url, clock, log_capture.logger).sync(2025)

    assert (result.created, result.updated, result.stores_processed) == (0, 0, 0)


@pytest.mark.asyncio
async def test_yearly_sync_rolls_up_months_and_updates_on_rerun(database_url, seed_stores, clock, log_capture) -> None:
    ids = seed_stores([("A", "Store A", True), ("B", "Store B", True)])
    _insert(
        database_url,
        MonthlySale,
        [
            {"store_id": ids["A"], "store_code": "A", "store_name": "Store A", "year_month": "2024-01", "total": Decimal("10")},
            {"store_id": ids["A"], "store_code": "A", "store_name": "Store A", "year_month": "2024-12", "total": Decimal("2.50")},
            {"store_id": ids["B"], "store_code": "B", "store_name": "Store B", "year_month": "2024-06", "total": Decimal("4")},
            {"store_id": ids["A"], "store_code": "A", "store_name": "Store A", "year_month": "2025-01", "total": Decimal("100")},
        ],
    )
    engine = _yearly_engine(database_url, clock, log_capture.logger)

    first = await engine.sync(2024)
    second = await engine.sync(2024)

    assert (first.created, first.updated, first.stores_processed) == (2, 0, 2)
    assert (second.created, second.updated) == (0, 2)
    rows = await _all(database_url, YearlySale, [YearlySale.store_id])
    assert [(row.store_id, row.year, Decimal(row.total)) for row in rows] == [
        (ids["A"], 2024, Decimal("12.50")),
        (ids["B"], 2024, Decimal("4.00")),
    ]


@pytest.mark.asyncio
async def test_yearly_persistence_failure_aborts_remaining_records(
    database_url, seed_stores, clock, log_capture, monkeypatch
) -> None:
    ids = seed_stores([("A", "Store A", True), ("B", "Store B", True)])
    _insert(
        database_url,
        MonthlySale,
        [
            {"store_id": ids["A"], "store_code": "A", "store_name": "Store A", "year_month": "2024-01", "total": Decimal("1")},
            {"store_id": ids["B"], "store_code": "B", "store_name": "Store B", "year_month": "2024-01", "total": Decimal("2")},
        ],
    )
    engine = _yearly_engine(database_url, clock, log_capture.logger)
    attempts: list = []

    async def failing_upsert(record):
        attempts.append(record.key)
        raise PersistenceError("disk full", key=record.key)

    monkeypatch.setattr(engine.store, "upsert", failing_upsert)

    with pytest.raises(PersistenceError):
        await engine.sync(2024)

    assert len(attempts) == 1
    assert log_capture.by_phase("persist")[0]["status"] == "error"


@pytest.mark.asyncio
@pytest.mark.parametrize("year", [1999, 2027])
async def test_yearly_rejects_out_of_range_years(database_url, log_capture, year) -> None:
    clock = fixed_clock(datetime(2025, 6, 1, tzinfo=timezone.utc))

    with pytest.raises(ValidationError):
        await _yearly_engine(database_url, clock, log_capture.logger).sync(year)


@pytest.mark.asyncio
async def test_rollup_queries_report_storage_failures_as_persistence_errors(tmp_path) -> None:
    schemaless_url = f"sqlite+aiosqlite:///{tmp_path / 'schemaless.db'}"

    with pytest.raises(PersistenceError):
        await aggregate_daily_by_month(schemaless_url, date(2025, 3, 1), date(2025, 3, 31))
    with pytest.raises(PersistenceError):
        await aggregate_monthly_by_year(schemaless_url, 2025)
