from __future__ import annotations

import importlib.util
from pathlib import Path
from typing import Callable

import pytest
import sqlalchemy as sa

from alembic.migration import MigrationContext
from alembic.operations import Operations


def _load_migration_module():
    project_root = Path(__file__).resolve().parents[2]
    module_path = project_root / "alembic" / "versions" / "0001_sales_tables.py"
    spec = importlib.util.spec_from_file_location("v0001_sales_tables", module_path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Unable to load migration module from {module_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


migration = _load_migration_module()


def _run_migration(connection: sa.Connection, fn: Callable[[], None], monkeypatch: pytest.MonkeyPatch) -> None:
    context = MigrationContext.configure(connection)
    operations = Operations(context)
    original_op = migration.op
    monkeypatch.setattr(migration, "op", operations)
    try:
        fn()
    finally:
        monkeypatch.setattr(migration, "op", original_op)


def test_sales_tables_upgrade_and_downgrade(monkeypatch: pytest.MonkeyPatch) -> None:
    engine = sa.create_engine("sqlite://")

    with engine.begin() as connection:
        _run_migration(connection, migration.upgrade, monkeypatch)

    with engine.connect() as connection:
        inspector = sa.inspect(connection)
        assert {"stores", "daily_sales", "monthly_sales", "yearly_sales"} <= set(inspector.get_table_names())
        unique = {
            tuple(constraint["column_names"])
            for constraint in inspector.get_unique_constraints("daily_sales")
        }
        assert ("store_id", "sale_date") in unique

    with engine.begin() as connection:
        connection.execute(sa.text("INSERT INTO stores (store_code, store_name) VALUES ('A', 'Alpha')"))
        connection.execute(
            sa.text(
                "INSERT INTO daily_sales (store_id, store_code, store_name, sale_date, total) "
                "VALUES (1, 'A', 'Alpha', '2025-03-01', 10)"
            )
        )

    with pytest.raises(sa.exc.IntegrityError):
        with engine.begin() as connection:
            connection.execute(
                sa.text(
                    "INSERT INTO daily_sales (store_id, store_code, store_name, sale_date, total) "
                    "VALUES (1, 'A', 'Alpha', '2025-03-01', 20)"
                )
            )

    with engine.begin() as connection:
        _run_migration(connection, migration.downgrade, monkeypatch)

    with engine.connect() as connection:
        assert "daily_sales" not in sa.inspect(connection).get_table_names()
