"""Zero-fill completeness over an expected key universe."""
from __future__ import annotations

from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence, TypeVar

from sales_sync.exceptions import DataIntegrityWarning
from sales_sync.json_logger import JsonLogger
from sales_sync.reconcile import report_duplicate

RowT = TypeVar("RowT")
KeyT = TypeVar("KeyT", bound=Hashable)


def fill(
    actual: Iterable[RowT],
    expected_keys: Iterable[KeyT],
    zero_factory: Callable[[KeyT], RowT],
    *,
    key: Callable[[RowT], KeyT],
    sort_key: Callable[[RowT], object],
    logger: Optional[JsonLogger] = None,
    source: str = "completeness",
) -> List[RowT]:
    """Return exactly one row per expected key.

    Rows in ``actual`` are looked up by ``key``; a repeated key keeps the
    first row and logs a DataIntegrityWarning. Missing keys are produced by
    ``zero_factory``, which must fill the real display attributes. Rows in
    ``actual`` whose key is not expected are left out. The result is sorted
    by ``sort_key`` (store name, then period).
    """

    by_key: Dict[KeyT, RowT] = {}
    for row in actual:
        row_key = key(row)
        if row_key in by_key:
            report_duplicate(DataIntegrityWarning(row_key, source=source), logger)
            continue
        by_key[row_key] = row

    output: List[RowT] = []
    seen: set = set()
    for expected in expected_keys:
        if expected in seen:
            continue
        seen.add(expected)
        row = by_key.get(expected)
        output.append(row if row is not None else zero_factory(expected))

    output.sort(key=sort_key)
    return output


def cross_keys(store_keys: Sequence[Hashable], periods: Sequence[Hashable]) -> List[tuple]:
    """Return the ``store x period`` key universe."""

    return [(store_key, period) for store_key in store_keys for period in periods]
