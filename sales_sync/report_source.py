"""HTTP client for the legacy per-store-per-day sales report."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional, Sequence

import httpx
from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from sales_sync.aggregates import ZERO, money
from sales_sync.dates import Clock, system_clock, validate_date_range
from sales_sync.exceptions import UpstreamFetchError, ValidationError
from sales_sync.stores import normalize_store_codes

STORE_REPORT_BY_DAY_PATH = "/sales/store-report-by-day"
DEFAULT_TIMEOUT_SECONDS = 120
MAX_STORE_CODES = 50

DANFE_ORIGINS = ["015", "002"]
PDV_ORIGINS = ["009"]
EXCHANGE_ORIGINS = ["051", "065"]
SELL_OPERATIONS = [
    "000999",
    "000007",
    "000001",
    "000045",
    "000054",
    "000062",
    "000063",
    "000064",
    "000065",
    "000067",
    "000068",
    "000069",
    "000071",
]
EXCHANGE_OPERATIONS = ["000015", "000048"]


class DailyTotalsRow(BaseModel):
    """One store/day row; amounts that come back null are treated as zero."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    store_code: str = Field(alias="storeCode")
    store_name: Optional[str] = Field(default=None, alias="storeName")
    report_date: date = Field(alias="reportDate")
    danfe: Decimal = ZERO
    pdv: Decimal = ZERO
    exchange: Decimal = Field(default=ZERO, alias="troca")

    @field_validator("store_code", mode="before")
    @classmethod
    def _normalize_code(cls, value: Any) -> str:
        return str(value or "").strip().upper()

    @field_validator("report_date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip():
            return date_parser.parse(value.strip()).date()
        if isinstance(value, datetime):
            return value.date()
        return value

    @field_validator("danfe", "pdv", "exchange", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> Decimal:
        return money(value)


def validate_fetch_request(
    store_codes: Sequence[str], start: date, end: date, *, today: date
) -> List[str]:
    """Validate a fetch request and return the normalized store codes."""

    validate_date_range(start, end)
    if start > today:
        raise ValidationError(f"start date {start} cannot be in the future")
    if end > today:
        raise ValidationError(f"end date {end} cannot be in the future")
    codes = normalize_store_codes(store_codes)
    if not codes:
        raise ValidationError("at least one store code is required")
    if len(codes) > MAX_STORE_CODES:
        raise ValidationError(f"at most {MAX_STORE_CODES} store codes are allowed per request; got {len(codes)}")
    return codes


def build_request_body(store_codes: Sequence[str], start: date, end: date) -> dict[str, Any]:
    return {
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "storeCodes": list(store_codes),
        "danfeOrigin": DANFE_ORIGINS,
        "pdvOrigin": PDV_ORIGINS,
        "exchangeOrigin": EXCHANGE_ORIGINS,
        "sellOperation": SELL_OPERATIONS,
        "exchangeOperation": EXCHANGE_OPERATIONS,
    }


class ReportSource:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self.clock = clock or system_clock()

    async def fetch_daily_totals(
        self, store_codes: Sequence[str], start: date, end: date
    ) -> List[DailyTotalsRow]:
        codes = validate_fetch_request(store_codes, start, end, today=self.clock().date())
        body = build_request_body(codes, start, end)

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout_seconds),
            transport=self.transport,
        ) as client:
            try:
                response = await client.post(STORE_REPORT_BY_DAY_PATH, json=body)
                response.raise_for_status()
            except httpx.TimeoutException as exc:
                raise UpstreamFetchError(
                    f"report source timed out after {self.timeout_seconds}s"
                ) from exc
            except httpx.HTTPStatusError as exc:
                raise UpstreamFetchError(
                    f"report source answered {exc.response.status_code}: {exc.response.text[:200]}",
                    status_code=exc.response.status_code,
                ) from exc
            except httpx.RequestError as exc:
                raise UpstreamFetchError(f"report source unreachable: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamFetchError("report source returned invalid JSON") from exc
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise UpstreamFetchError(f"report source returned {type(payload).__name__}, expected a list")

        try:
            return [DailyTotalsRow.model_validate(item) for item in payload]
        except PydanticValidationError as exc:
            raise UpstreamFetchError(f"report source returned malformed rows: {exc}") from exc
