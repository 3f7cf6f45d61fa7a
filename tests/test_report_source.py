from __future__ import annotations

import json
from datetime import date, datetime, timezone
from decimal import Decimal

import httpx
import pytest
from pydantic import ValidationError as PydanticValidationError

from sales_sync.exceptions import UpstreamFetchError, ValidationError
from sales_sync.report_source import (
    MAX_STORE_CODES,
    STORE_REPORT_BY_DAY_PATH,
    DailyTotalsRow,
    ReportSource,
)

BASE_URL = "https://legacy.example.com"
TODAY = datetime(2025, 3, 2, 9, 0, tzinfo=timezone.utc)


def _source(handler, **kwargs) -> ReportSource:
    return ReportSource(
        BASE_URL,
        transport=httpx.MockTransport(handler),
        clock=lambda: TODAY,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_fetch_posts_filters_and_parses_rows() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json=[
                {
                    "storeCode": "a1",
                    "storeName": "Stale name",
                    "reportDate": "2025-03-01",
                    "danfe": 100,
                    "pdv": "50.5",
                    "troca": None,
                }
            ],
        )

    rows = await _source(handler).fetch_daily_totals(["a1", "B2", "a1"], date(2025, 3, 1), date(2025, 3, 1))

    assert seen["path"] == STORE_REPORT_BY_DAY_PATH
    assert seen["body"]["storeCodes"] == ["A1", "B2"]
    assert seen["body"]["startDate"] == "2025-03-01"
    assert seen["body"]["danfeOrigin"] == ["015", "002"]
    assert seen["body"]["exchangeOperation"] == ["000015", "000048"]
    assert len(rows) == 1
    row = rows[0]
    assert row.store_code == "A1"
    assert row.report_date == date(2025, 3, 1)
    assert row.danfe == Decimal("100.00")
    assert row.pdv == Decimal("50.50")
    assert row.exchange == Decimal("0.00")


@pytest.mark.asyncio
async def test_timeout_is_a_fetch_failure_not_empty_data() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(UpstreamFetchError) as exc_info:
        await _source(handler, timeout_seconds=5).fetch_daily_totals(["A1"], date(2025, 3, 1), date(2025, 3, 1))

    assert exc_info.value.status_code is None
    assert "timed out" in str(exc_info.value)


@pytest.mark.asyncio
async def test_error_status_is_raised_with_status_code() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(UpstreamFetchError) as exc_info:
        await _source(handler).fetch_daily_totals(["A1"], date(2025, 3, 1), date(2025, 3, 1))

    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_connection_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamFetchError):
        await _source(handler).fetch_daily_totals(["A1"], date(2025, 3, 1), date(2025, 3, 1))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("codes", "start", "end"),
    [
        ([f"S{idx}" for idx in range(MAX_STORE_CODES + 1)], date(2025, 3, 1), date(2025, 3, 1)),
        ([], date(2025, 3, 1), date(2025, 3, 1)),
        (["A1"], date(2025, 3, 2), date(2025, 3, 1)),
        (["A1"], date(2025, 3, 1), date(2025, 3, 3)),
    ],
)
async def test_invalid_requests_fail_before_any_io(codes, start, end) -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no request expected")

    with pytest.raises(ValidationError):
        await _source(handler).fetch_daily_totals(codes, start, end)


@pytest.mark.parametrize("amount", ["abc", "", "Infinity", "NaN", True, [1]])
def test_unparseable_amounts_are_rejected_not_zeroed(amount) -> None:
    with pytest.raises(PydanticValidationError):
        DailyTotalsRow.model_validate({"storeCode": "A", "reportDate": "2025-03-01", "danfe": amount})


def test_missing_amounts_count_as_zero() -> None:
    row = DailyTotalsRow.model_validate({"storeCode": "A", "reportDate": "2025-03-01", "danfe": None})

    assert row.danfe == Decimal("0.00")
    assert row.pdv == Decimal("0.00")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["abc", "Infinity", "-Infinity", "NaN"])
async def test_malformed_amount_in_payload_is_a_fetch_failure(amount) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[{"storeCode": "A1", "reportDate": "2025-03-01", "danfe": amount, "pdv": 1, "troca": 0}],
        )

    with pytest.raises(UpstreamFetchError):
        await _source(handler).fetch_daily_totals(["A1"], date(2025, 3, 1), date(2025, 3, 1))
