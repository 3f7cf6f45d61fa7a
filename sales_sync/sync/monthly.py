"""Monthly tier: persisted daily totals rolled up per store and month."""
from __future__ import annotations

from datetime import date
from typing import List, Optional

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from sales_sync.aggregate_store import AggregateStore
from sales_sync.aggregates import MonthlyAggregate, money
from sales_sync.dates import Clock, count_months, system_clock, validate_date_range
from sales_sync.db import session_scope
from sales_sync.exceptions import PersistenceError
from sales_sync.json_logger import JsonLogger, get_logger, log_event
from sales_sync.models import DailySale
from sales_sync.sync.common import (
    MonthlySyncResult,
    StoreDirectory,
    log_sync_metrics,
    reconcile_and_persist,
    stores_by_id,
)


async def aggregate_daily_by_month(database_url: str, start: date, end: date) -> List[MonthlyAggregate]:
    """Sum persisted daily totals grouped by store and calendar month."""

    year_col = sa.extract("year", DailySale.sale_date)
    month_col = sa.extract("month", DailySale.sale_date)
    stmt = (
        sa.select(
            DailySale.store_id,
            sa.func.max(DailySale.store_code).label("store_code"),
            sa.func.max(DailySale.store_name).label("store_name"),
            year_col.label("year"),
            month_col.label("month"),
            sa.func.coalesce(sa.func.sum(DailySale.total), 0).label("total"),
        )
        .where(DailySale.sale_date >= start, DailySale.sale_date <= end)
        .group_by(DailySale.store_id, year_col, month_col)
        .order_by(year_col, month_col, DailySale.store_id)
    )
    try:
        async with session_scope(database_url) as session:
            result = await session.execute(stmt)
            rows = result.mappings().all()
    except SQLAlchemyError as exc:
        raise PersistenceError(f"daily rollup for {start}..{end} failed: {exc}") from exc

    return [
        MonthlyAggregate(
            store_id=row["store_id"],
            store_code=row["store_code"],
            store_name=row["store_name"],
            year_month=f"{int(row['year']):04d}-{int(row['month']):02d}",
            total=money(row["total"]),
        )
        for row in rows
    ]


class MonthlySyncEngine:
    def __init__(
        self,
        *,
        directory: StoreDirectory,
        daily_database_url: str,
        store: AggregateStore[MonthlyAggregate],
        clock: Optional[Clock] = None,
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self.directory = directory
        self.daily_database_url = daily_database_url
        self.store = store
        self.clock = clock or system_clock()
        self.logger = (logger or get_logger()).bind(tier="monthly")

    async def sync(self, start: date, end: date) -> MonthlySyncResult:
        validate_date_range(start, end)
        result = MonthlySyncResult(
            tier="monthly",
            start_date=start,
            end_date=end,
            processed_at=self.clock(),
            months_processed=count_months(start, end),
        )

        aggregated = await aggregate_daily_by_month(self.daily_database_url, start, end)
        if not aggregated:
            log_event(logger=self.logger, phase="sync", message="no daily rows to aggregate")
            log_sync_metrics(result, logger=self.logger)
            return result

        # display attributes follow the directory; inactive stores keep their persisted ones
        active = stores_by_id(await self.directory.list_active())
        for record in aggregated:
            store = active.get(record.store_id)
            if store is not None:
                record.store_code = store.code
                record.store_name = store.name

        outcome = await reconcile_and_persist(self.store, aggregated, logger=self.logger)
        result.created = outcome.created
        result.updated = outcome.updated
        result.stores_processed = len({record.store_id for record in aggregated})
        log_sync_metrics(result, logger=self.logger)
        return result
