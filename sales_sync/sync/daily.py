"""Daily tier: report source rows reconciled into ``daily_sales``."""
from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional, Protocol, Sequence

from sales_sync.aggregate_store import AggregateStore
from sales_sync.aggregates import DailyAggregate
from sales_sync.dates import Clock, system_clock, validate_date_range
from sales_sync.exceptions import ValidationError
from sales_sync.json_logger import JsonLogger, get_logger, log_event
from sales_sync.reconcile import dedupe_first
from sales_sync.report_source import MAX_STORE_CODES, DailyTotalsRow
from sales_sync.stores import StoreInfo, index_by_code, normalize_store_codes
from sales_sync.sync.common import StoreDirectory, SyncResult, log_sync_metrics, reconcile_and_persist


class DailyTotalsSource(Protocol):
    async def fetch_daily_totals(
        self, store_codes: Sequence[str], start: date, end: date
    ) -> List[DailyTotalsRow]:
        ...


def _store_code_batches(codes: Sequence[str]) -> List[List[str]]:
    return [list(codes[idx : idx + MAX_STORE_CODES]) for idx in range(0, len(codes), MAX_STORE_CODES)]


def map_daily_rows(
    rows: Sequence[DailyTotalsRow],
    stores: Sequence[StoreInfo],
    *,
    logger: JsonLogger,
) -> List[DailyAggregate]:
    """Map report rows onto active stores.

    Display attributes come from the directory, never from the report row.
    Rows for codes that are not active are dropped.
    """

    by_code = index_by_code(stores)
    records: List[DailyAggregate] = []
    skipped: Dict[str, int] = {}
    for row in rows:
        store = by_code.get(row.store_code)
        if store is None:
            skipped[row.store_code] = skipped.get(row.store_code, 0) + 1
            continue
        records.append(
            DailyAggregate.from_amounts(
                store_id=store.store_id,
                store_code=store.code,
                store_name=store.name,
                sale_date=row.report_date,
                danfe=row.danfe,
                pdv=row.pdv,
                exchange=row.exchange,
            )
        )
    if skipped:
        log_event(
            logger=logger,
            phase="map",
            status="warn",
            message="dropped report rows for store codes that are not active",
            store_codes=sorted(skipped),
            rows=sum(skipped.values()),
        )
    return records


class DailySyncEngine:
    def __init__(
        self,
        *,
        directory: StoreDirectory,
        report_source: DailyTotalsSource,
        store: AggregateStore[DailyAggregate],
        clock: Optional[Clock] = None,
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self.directory = directory
        self.report_source = report_source
        self.store = store
        self.clock = clock or system_clock()
        self.logger = (logger or get_logger()).bind(tier="daily")

    def _validate(self, start: date, end: date, store_codes: Sequence[str] | None) -> List[str]:
        validate_date_range(start, end)
        today = self.clock().date()
        if end > today:
            raise ValidationError(f"end date {end} cannot be in the future")
        if store_codes is None:
            return []
        codes = normalize_store_codes(store_codes)
        if not codes:
            raise ValidationError("store code list cannot be empty")
        if len(codes) > MAX_STORE_CODES:
            raise ValidationError(
                f"at most {MAX_STORE_CODES} store codes are allowed per request; got {len(codes)}"
            )
        return codes

    async def sync(self, start: date, end: date, store_codes: Sequence[str] | None = None) -> SyncResult:
        """Fetch, reconcile and persist daily totals for ``[start, end]``.

        Without ``store_codes`` every active store is synced, in requests of
        at most 50 codes each.
        """

        codes = self._validate(start, end, store_codes)
        result = SyncResult(tier="daily", start_date=start, end_date=end, processed_at=self.clock())

        stores = await self.directory.list_active(codes or None)
        if not stores:
            log_event(logger=self.logger, phase="sync", status="warn", message="no active stores found")
            log_sync_metrics(result, logger=self.logger)
            return result

        rows: List[DailyTotalsRow] = []
        for batch in _store_code_batches([store.code for store in stores]):
            fetched = await self.report_source.fetch_daily_totals(batch, start, end)
            log_event(
                logger=self.logger,
                phase="fetch",
                message="fetched daily totals",
                store_codes=len(batch),
                rows=len(fetched),
            )
            rows.extend(fetched)

        records = dedupe_first(
            map_daily_rows(rows, stores, logger=self.logger), source="report_source", logger=self.logger
        )
        if not records:
            log_event(logger=self.logger, phase="sync", message="report source returned no rows")
            log_sync_metrics(result, logger=self.logger)
            return result

        outcome = await reconcile_and_persist(self.store, records, logger=self.logger)
        result.created = outcome.created
        result.updated = outcome.updated
        result.stores_processed = len({record.store_id for record in records})
        log_sync_metrics(result, logger=self.logger)
        return result
