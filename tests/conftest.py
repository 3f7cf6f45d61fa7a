import io
import json
import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Sequence

import pytest
import sqlalchemy as sa

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sales_sync.json_logger import JsonLogger  # noqa: E402
from sales_sync.models import Base, Store  # noqa: E402
from sales_sync.report_source import DailyTotalsRow  # noqa: E402


def fixed_clock(value: datetime) -> Callable[[], datetime]:
    return lambda: value


class FakeReportSource:
    """Returns canned rows filtered to the requested codes and dates."""

    def __init__(self, rows: Sequence[Dict] = (), error: Exception | None = None) -> None:
        self.rows = [DailyTotalsRow.model_validate(row) for row in rows]
        self.error = error
        self.calls: List[tuple] = []

    async def fetch_daily_totals(self, store_codes, start: date, end: date):
        self.calls.append((list(store_codes), start, end))
        if self.error is not None:
            raise self.error
        codes = {code.upper() for code in store_codes}
        return [row for row in self.rows if row.store_code in codes and start <= row.report_date <= end]


class LogCapture:
    def __init__(self) -> None:
        self.stream = io.StringIO()
        self.logger = JsonLogger(run_id="test_run", stream=self.stream, log_file_path=None)

    def events(self) -> List[Dict]:
        return [json.loads(line) for line in self.stream.getvalue().splitlines() if line.strip()]

    def by_phase(self, phase: str) -> List[Dict]:
        return [event for event in self.events() if event["phase"] == phase]


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    db_path = tmp_path / "sales.db"
    engine = sa.create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    engine.dispose()
    return f"sqlite+aiosqlite:///{db_path}"


@pytest.fixture
def seed_stores(database_url: str) -> Callable[[Sequence[tuple]], Dict[str, int]]:
    """Insert ``(code, name, is_active)`` stores and return their ids by code."""

    def _seed(stores: Sequence[tuple]) -> Dict[str, int]:
        engine = sa.create_engine(database_url.replace("+aiosqlite", ""))
        ids: Dict[str, int] = {}
        with engine.begin() as connection:
            for code, name, is_active in stores:
                result = connection.execute(
                    sa.insert(Store.__table__).values(store_code=code, store_name=name, is_active=is_active)
                )
                ids[code] = result.inserted_primary_key[0]
        engine.dispose()
        return ids

    return _seed


@pytest.fixture
def log_capture() -> LogCapture:
    return LogCapture()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return fixed_clock(datetime(2025, 3, 2, 1, 0, tzinfo=timezone.utc))
