"""Yearly tier: persisted monthly totals rolled up per store, written record by record."""
from __future__ import annotations

from typing import List, Optional

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from sales_sync.aggregate_store import AggregateStore
from sales_sync.aggregates import YearlyAggregate, money
from sales_sync.dates import Clock, system_clock
from sales_sync.db import session_scope
from sales_sync.exceptions import PersistenceError, ValidationError
from sales_sync.json_logger import JsonLogger, error_extras, get_logger, log_event
from sales_sync.models import MonthlySale
from sales_sync.reconcile import merge
from sales_sync.sync.common import StoreDirectory, YearlySyncResult, log_sync_metrics, stores_by_id

MIN_YEAR = 2000


def validate_year(year: int, *, current_year: int) -> None:
    if not isinstance(year, int) or isinstance(year, bool):
        raise ValidationError(f"year must be an integer; got {year!r}")
    if year < MIN_YEAR or year > current_year + 1:
        raise ValidationError(f"year must be between {MIN_YEAR} and {current_year + 1}; got {year}")


async def aggregate_monthly_by_year(database_url: str, year: int) -> List[YearlyAggregate]:
    stmt = (
        sa.select(
            MonthlySale.store_id,
            sa.func.max(MonthlySale.store_code).label("store_code"),
            sa.func.max(MonthlySale.store_name).label("store_name"),
            sa.func.coalesce(sa.func.sum(MonthlySale.total), 0).label("total"),
        )
        .where(MonthlySale.year_month.like(f"{year:04d}-%"))
        .group_by(MonthlySale.store_id)
        .order_by(MonthlySale.store_id)
    )
    try:
        async with session_scope(database_url) as session:
            result = await session.execute(stmt)
            rows = result.mappings().all()
    except SQLAlchemyError as exc:
        raise PersistenceError(f"monthly rollup for {year} failed: {exc}") from exc

    return [
        YearlyAggregate(
            store_id=row["store_id"],
            store_code=row["store_code"],
            store_name=row["store_name"],
            year=year,
            total=money(row["total"]),
        )
        for row in rows
    ]


class YearlySyncEngine:
    def __init__(
        self,
        *,
        directory: StoreDirectory,
        monthly_database_url: str,
        store: AggregateStore[YearlyAggregate],
        clock: Optional[Clock] = None,
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self.directory = directory
        self.monthly_database_url = monthly_database_url
        self.store = store
        self.clock = clock or system_clock()
        self.logger = (logger or get_logger()).bind(tier="yearly")

    async def sync(self, year: int) -> YearlySyncResult:
        """Roll monthly totals up into ``year``.

        Any failed write aborts the remaining records and raises
        PersistenceError.
        """

        now = self.clock()
        validate_year(year, current_year=now.year)
        result = YearlySyncResult(tier="yearly", year=year, processed_at=now)

        aggregated = await aggregate_monthly_by_year(self.monthly_database_url, year)
        if not aggregated:
            log_event(logger=self.logger, phase="sync", message="no monthly rows to aggregate", year=year)
            log_sync_metrics(result, logger=self.logger)
            return result

        active = stores_by_id(await self.directory.list_active())
        for incoming in aggregated:
            store = active.get(incoming.store_id)
            if store is not None:
                incoming.store_code = store.code
                incoming.store_name = store.name
            try:
                existing = await self.store.find_by_key(incoming.key)
                if existing is None:
                    await self.store.upsert(incoming)
                    result.created += 1
                else:
                    await self.store.upsert(merge(existing, incoming))
                    result.updated += 1
            except PersistenceError as exc:
                log_event(
                    logger=self.logger,
                    phase="persist",
                    status="error",
                    message="yearly upsert failed; aborting run",
                    key=incoming.key,
                    extras=error_extras(exc),
                )
                raise

        result.stores_processed = len({record.store_id for record in aggregated})
        log_sync_metrics(result, logger=self.logger)
        return result
