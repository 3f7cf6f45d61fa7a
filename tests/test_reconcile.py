from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from sales_sync.aggregates import DailyAggregate, MonthlyAggregate
from sales_sync.reconcile import merge, partition


def _daily(store_id: int, day: int, danfe: str = "10", *, record_id: int | None = None) -> DailyAggregate:
    record = DailyAggregate.from_amounts(
        store_id=store_id,
        store_code=f"S{store_id}",
        store_name=f"Store {store_id}",
        sale_date=date(2025, 3, day),
        danfe=danfe,
        pdv="0",
        exchange="0",
    )
    record.id = record_id
    return record


def test_partition_splits_creates_and_updates_by_natural_key() -> None:
    incoming = [_daily(1, 1), _daily(1, 2), _daily(2, 1), _daily(2, 2), _daily(3, 1)]
    existing = {
        (1, date(2025, 3, 2)): _daily(1, 2, "1", record_id=11),
        (3, date(2025, 3, 1)): _daily(3, 1, "1", record_id=31),
    }

    parts = partition(incoming, existing)

    assert len(parts.to_create) == 3
    assert len(parts.to_update) == 2
    created = {record.key for record in parts.to_create}
    updated = {record.key for record in parts.to_update}
    assert created.isdisjoint(updated)
    assert {record.id for record in parts.to_update} == {11, 31}


def test_merge_overwrites_values_and_keeps_identity() -> None:
    existing = _daily(1, 1, "5", record_id=7)
    existing.store_name = "Old name"
    incoming = _daily(1, 1, "42")

    merged = merge(existing, incoming)

    assert merged.id == 7
    assert merged.store_name == "Store 1"
    assert merged.danfe == Decimal("42.00")
    assert merged.total == Decimal("42.00")


def test_merge_rejects_different_keys() -> None:
    with pytest.raises(ValueError):
        merge(_daily(1, 1), _daily(1, 2))


def test_partition_keeps_first_duplicate(log_capture) -> None:
    first = MonthlyAggregate(store_id=1, store_code="S1", store_name="One", year_month="2025-03", total=Decimal("1"))
    second = MonthlyAggregate(store_id=1, store_code="S1", store_name="One", year_month="2025-03", total=Decimal("2"))

    parts = partition([first, second], {}, logger=log_capture.logger)

    assert parts.to_create == [first]
    assert parts.to_update == []
    assert len(log_capture.by_phase("integrity")) == 1


def test_daily_total_includes_exchange_dominant_case() -> None:
    record = DailyAggregate.from_amounts(
        store_id=1,
        store_code="S1",
        store_name="One",
        sale_date=date(2025, 3, 1),
        danfe="10.00",
        pdv="5.00",
        exchange="40.00",
    )

    assert record.total == Decimal("-25.00")
    assert record.total == record.danfe + record.pdv - record.exchange
