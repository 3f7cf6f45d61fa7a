"""Result types and shared helpers for the tier sync engines."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, Optional, Protocol, Sequence

from sales_sync.aggregate_store import AggregateStore, index_by_key
from sales_sync.aggregates import AggregateT
from sales_sync.json_logger import JsonLogger, log_event
from sales_sync.reconcile import Partition, partition
from sales_sync.stores import StoreInfo


class StoreDirectory(Protocol):
    async def list_active(self, store_codes: Sequence[str] | None = None) -> list[StoreInfo]:
        ...


@dataclass
class SyncResult:
    tier: str
    created: int = 0
    updated: int = 0
    stores_processed: int = 0
    processed_at: Optional[datetime] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @property
    def total_processed(self) -> int:
        return self.created + self.updated


@dataclass
class MonthlySyncResult(SyncResult):
    months_processed: int = 0


@dataclass
class YearlySyncResult(SyncResult):
    year: Optional[int] = None


@dataclass
class ReconcileOutcome:
    partition: Partition = field(default_factory=Partition)
    created: int = 0
    updated: int = 0


async def reconcile_and_persist(
    store: AggregateStore[AggregateT],
    records: Sequence[AggregateT],
    *,
    logger: JsonLogger,
) -> ReconcileOutcome:
    """Split ``records`` into create/update partitions and write each as one batch."""

    existing = await store.find_by_keys(record.key for record in records)
    parts = partition(records, index_by_key(existing), logger=logger)
    log_event(
        logger=logger,
        phase="reconcile",
        message="partitioned records by natural key",
        tier=store.tier.name,
        incoming=len(records),
        to_create=len(parts.to_create),
        to_update=len(parts.to_update),
    )
    await store.upsert_all(parts.to_create)
    await store.upsert_all(parts.to_update)
    return ReconcileOutcome(partition=parts, created=len(parts.to_create), updated=len(parts.to_update))


def stores_by_id(stores: Iterable[StoreInfo]) -> Dict[int, StoreInfo]:
    return {store.store_id: store for store in stores}


def log_sync_metrics(result: SyncResult, *, logger: JsonLogger) -> None:
    extras = {
        "tier": result.tier,
        "start_date": result.start_date,
        "end_date": result.end_date,
        "created": result.created,
        "updated": result.updated,
        "total_processed": result.total_processed,
        "stores_processed": result.stores_processed,
    }
    if isinstance(result, MonthlySyncResult):
        extras["months_processed"] = result.months_processed
    if isinstance(result, YearlySyncResult):
        extras["year"] = result.year
    log_event(logger=logger, phase="sync_metrics", message=f"{result.tier} sync finished", **extras)
