"""Per-tier sales aggregate records and their natural keys."""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar, Hashable, Mapping, Tuple, TypeVar, Union

Period = Union[date, str, int]
NaturalKey = Tuple[int, Period]

ZERO = Decimal("0")
CENTS = Decimal("0.01")


def _decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValueError(f"not an amount: {value!r}")
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"not an amount: {value!r}") from exc
    if not parsed.is_finite():
        raise ValueError(f"amount must be finite: {value!r}")
    return parsed


def money(value: Any) -> Decimal:
    return _decimal(value).quantize(CENTS)


@dataclass(slots=True)
class _Aggregate:
    PERIOD_FIELD: ClassVar[str] = ""
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = ()

    @property
    def period(self) -> Period:
        return getattr(self, self.PERIOD_FIELD)

    @property
    def key(self) -> NaturalKey:
        return (self.store_id, self.period)  # type: ignore[attr-defined]

    def to_values(self) -> dict[str, Any]:
        values = asdict(self)
        values.pop("id", None)
        return values

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]):
        names = {f.name for f in fields(cls)}
        return cls(**{name: row[name] for name in names if name in row})


@dataclass(slots=True)
class DailyAggregate(_Aggregate):
    store_id: int
    store_code: str
    store_name: str
    sale_date: date
    danfe: Decimal = ZERO
    pdv: Decimal = ZERO
    exchange: Decimal = ZERO
    total: Decimal = ZERO
    id: int | None = None

    PERIOD_FIELD: ClassVar[str] = "sale_date"
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "store_code",
        "store_name",
        "danfe",
        "pdv",
        "exchange",
        "total",
    )

    @classmethod
    def from_amounts(
        cls,
        *,
        store_id: int,
        store_code: str,
        store_name: str,
        sale_date: date,
        danfe: Any,
        pdv: Any,
        exchange: Any,
    ) -> "DailyAggregate":
        """Build a daily record; ``total`` is always danfe + pdv - exchange."""

        danfe_value = money(danfe)
        pdv_value = money(pdv)
        exchange_value = money(exchange)
        return cls(
            store_id=store_id,
            store_code=store_code,
            store_name=store_name,
            sale_date=sale_date,
            danfe=danfe_value,
            pdv=pdv_value,
            exchange=exchange_value,
            total=danfe_value + pdv_value - exchange_value,
        )


@dataclass(slots=True)
class MonthlyAggregate(_Aggregate):
    store_id: int
    store_code: str
    store_name: str
    year_month: str
    total: Decimal = ZERO
    id: int | None = None

    PERIOD_FIELD: ClassVar[str] = "year_month"
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("store_code", "store_name", "total")


@dataclass(slots=True)
class YearlyAggregate(_Aggregate):
    store_id: int
    store_code: str
    store_name: str
    year: int
    total: Decimal = ZERO
    id: int | None = None

    PERIOD_FIELD: ClassVar[str] = "year"
    MUTABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("store_code", "store_name", "total")


AggregateT = TypeVar("AggregateT", DailyAggregate, MonthlyAggregate, YearlyAggregate)


def natural_key(record: Any) -> Hashable:
    return record.key
