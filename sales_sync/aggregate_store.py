"""Persisted per-tier aggregates keyed by ``(store_id, period)``."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, Hashable, Iterable, List, Mapping, Sequence, Type

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sales_sync.aggregates import AggregateT, DailyAggregate, MonthlyAggregate, NaturalKey, YearlyAggregate
from sales_sync.db import session_scope
from sales_sync.exceptions import PersistenceError
from sales_sync.models import Base, DailySale, MonthlySale, YearlySale

DEFAULT_BATCH_SIZE = 500


@dataclass(frozen=True)
class Tier(Generic[AggregateT]):
    name: str
    model: Type[Base]
    record_type: Type[AggregateT]

    @property
    def table(self) -> sa.Table:
        return self.model.__table__  # type: ignore[attr-defined]

    @property
    def period_column(self) -> sa.Column:
        return self.table.c[self.record_type.PERIOD_FIELD]


DAILY_TIER: Tier[DailyAggregate] = Tier("daily", DailySale, DailyAggregate)
MONTHLY_TIER: Tier[MonthlyAggregate] = Tier("monthly", MonthlySale, MonthlyAggregate)
YEARLY_TIER: Tier[YearlyAggregate] = Tier("yearly", YearlySale, YearlyAggregate)


def _chunked(values: Sequence[Any], chunk_size: int) -> Iterable[Sequence[Any]]:
    for idx in range(0, len(values), chunk_size):
        yield values[idx : idx + chunk_size]


def _make_upsert(tier: Tier, rows: List[Mapping[str, Any]], *, use_sqlite: bool) -> sa.sql.dml.Insert:
    insert_fn = sqlite_insert if use_sqlite else pg_insert
    insert = insert_fn(tier.table).values(rows)
    set_ = {name: insert.excluded[name] for name in tier.record_type.MUTABLE_FIELDS}
    set_["updated_at"] = sa.func.now()
    return insert.on_conflict_do_update(
        index_elements=[tier.table.c.store_id, tier.period_column],
        set_=set_,
    )


class AggregateStore(Generic[AggregateT]):
    """Lookup and upsert of one tier's aggregates.

    Each ``upsert_all`` call runs in its own transaction, so a batch is
    all-or-nothing. Writes are conditional insert-or-update on the natural
    key, which keeps them atomic at the storage layer.
    """

    def __init__(self, tier: Tier[AggregateT], database_url: str, *, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.tier = tier
        self.database_url = database_url
        self.batch_size = batch_size

    def _to_record(self, row: Mapping[str, Any]) -> AggregateT:
        return self.tier.record_type.from_mapping(row)

    async def find_by_keys(self, keys: Iterable[NaturalKey]) -> List[AggregateT]:
        unique_keys = list(dict.fromkeys(keys))
        if not unique_keys:
            return []
        table = self.tier.table
        key_columns = (table.c.store_id, self.tier.period_column)
        records: List[AggregateT] = []
        try:
            async with session_scope(self.database_url) as session:
                for chunk in _chunked(unique_keys, self.batch_size):
                    stmt = sa.select(table).where(sa.tuple_(*key_columns).in_(list(chunk)))
                    result = await session.execute(stmt)
                    records.extend(self._to_record(row) for row in result.mappings())
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"{self.tier.name} lookup of {len(unique_keys)} keys failed: {exc}"
            ) from exc
        return records

    async def find_by_key(self, key: NaturalKey) -> AggregateT | None:
        store_id, period = key
        table = self.tier.table
        stmt = sa.select(table).where(table.c.store_id == store_id, self.tier.period_column == period)
        try:
            async with session_scope(self.database_url) as session:
                row = (await session.execute(stmt)).mappings().first()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{self.tier.name} lookup failed for {key!r}: {exc}", key=key) from exc
        return self._to_record(row) if row is not None else None

    async def upsert_all(self, records: Sequence[AggregateT]) -> List[AggregateT]:
        if not records:
            return []
        rows = [record.to_values() for record in records]
        try:
            async with session_scope(self.database_url) as session:
                async with session.begin():
                    for chunk in _chunked(rows, self.batch_size):
                        await self._execute_upsert(session, list(chunk))
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"{self.tier.name} batch upsert of {len(rows)} records failed: {exc}"
            ) from exc
        return list(records)

    async def upsert(self, record: AggregateT) -> AggregateT:
        try:
            async with session_scope(self.database_url) as session:
                async with session.begin():
                    await self._execute_upsert(session, [record.to_values()])
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"{self.tier.name} upsert failed for {record.key!r}: {exc}", key=record.key
            ) from exc
        return record

    async def _execute_upsert(self, session: AsyncSession, rows: List[Dict[str, Any]]) -> None:
        use_sqlite = session.bind.dialect.name == "sqlite"
        await session.execute(_make_upsert(self.tier, rows, use_sqlite=use_sqlite))

    async def count(self) -> int:
        async with session_scope(self.database_url) as session:
            result = await session.execute(sa.select(sa.func.count()).select_from(self.tier.table))
            return int(result.scalar_one())


def index_by_key(records: Iterable[AggregateT]) -> Dict[Hashable, AggregateT]:
    return {record.key: record for record in records}
