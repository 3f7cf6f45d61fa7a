"""Create/update partitioning of freshly built aggregates against persisted ones."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Generic, Hashable, Iterable, List, Mapping, Optional

from sales_sync.aggregates import AggregateT, natural_key
from sales_sync.exceptions import DataIntegrityWarning
from sales_sync.json_logger import JsonLogger, log_event

_stdlib_logger = logging.getLogger(__name__)


@dataclass
class Partition(Generic[AggregateT]):
    to_create: List[AggregateT] = field(default_factory=list)
    to_update: List[AggregateT] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.to_create) + len(self.to_update)


def merge(existing: AggregateT, incoming: AggregateT) -> AggregateT:
    """Overwrite the mutable fields of ``existing`` with ``incoming``.

    The surrogate ``id`` and natural key of ``existing`` are preserved;
    values are replaced wholesale, never summed.
    """

    if natural_key(existing) != natural_key(incoming):
        raise ValueError(
            f"cannot merge records with different keys: {natural_key(existing)!r} != {natural_key(incoming)!r}"
        )
    changes = {name: getattr(incoming, name) for name in incoming.MUTABLE_FIELDS}
    return replace(existing, **changes)


def dedupe_first(
    records: Iterable[AggregateT],
    *,
    source: str,
    logger: Optional[JsonLogger] = None,
) -> List[AggregateT]:
    """Drop repeated natural keys, keeping the first occurrence."""

    seen: Dict[Hashable, AggregateT] = {}
    for record in records:
        key = natural_key(record)
        if key in seen:
            report_duplicate(DataIntegrityWarning(key, source=source), logger)
            continue
        seen[key] = record
    return list(seen.values())


def partition(
    incoming: Iterable[AggregateT],
    existing_by_key: Mapping[Hashable, AggregateT],
    *,
    logger: Optional[JsonLogger] = None,
) -> Partition[AggregateT]:
    result: Partition[AggregateT] = Partition()
    for record in dedupe_first(incoming, source="reconciliation", logger=logger):
        current = existing_by_key.get(natural_key(record))
        if current is None:
            result.to_create.append(record)
        else:
            result.to_update.append(merge(current, record))
    return result


def report_duplicate(warning: DataIntegrityWarning, logger: Optional[JsonLogger]) -> None:
    if logger is None:
        _stdlib_logger.warning(str(warning))
        return
    log_event(
        logger=logger,
        phase="integrity",
        status="warn",
        message=str(warning),
        warning=type(warning).__name__,
        key=warning.key,
        source=warning.source,
    )
