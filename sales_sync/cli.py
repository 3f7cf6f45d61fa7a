from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from dataclasses import asdict
from datetime import date
from typing import Any, Iterable, List, Optional, Sequence

from sales_sync.config import ConfigError, get_config
from sales_sync.db import dispose_engines, run_alembic_upgrade
from sales_sync.dates import daily_sync_date, monthly_sync_window
from sales_sync.exceptions import SalesSyncError, ValidationError
from sales_sync.json_logger import JsonLogger, error_extras, get_logger, log_event, new_run_id
from sales_sync.pipeline import SyncComponents, build_components, build_trigger
from sales_sync.reports import daily_report, monthly_report, pivot_by_day, store_report_by_day, yearly_report
from sales_sync.scheduler import run_manual


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}; expected YYYY-MM-DD") from exc


def _parse_codes(value: str) -> List[str]:
    return [token.strip() for token in value.replace("\n", ",").split(",") if token.strip()]


def _emit_rows(rows: Iterable[Any], stream=None) -> None:
    out = stream or sys.stdout
    for row in rows:
        payload = asdict(row)
        if hasattr(row, "total") and "total" not in payload:
            payload["total"] = row.total
        out.write(json.dumps(payload, default=str, ensure_ascii=False) + "\n")
    out.flush()


async def _sync_daily(args: argparse.Namespace, components: SyncComponents, logger: JsonLogger):
    start = args.start or daily_sync_date(components.clock)
    end = args.end or start
    codes = _parse_codes(args.stores) if args.stores else None
    return await run_manual("daily_sync", lambda: components.daily.sync(start, end, codes), logger=logger)


async def _sync_monthly(args: argparse.Namespace, components: SyncComponents, logger: JsonLogger):
    default_start, default_end = monthly_sync_window(components.clock)
    start = args.start or default_start
    end = args.end or default_end
    return await run_manual("monthly_sync", lambda: components.monthly.sync(start, end), logger=logger)


async def _sync_yearly(args: argparse.Namespace, components: SyncComponents, logger: JsonLogger):
    year = args.year or components.clock().year
    return await run_manual("yearly_sync", lambda: components.yearly.sync(year), logger=logger)


async def _report(args: argparse.Namespace, components: SyncComponents, logger: JsonLogger, database_url: str):
    today = components.clock().date()
    if args.report == "daily":
        return await daily_report(
            database_url=database_url,
            directory=components.directory,
            start=args.start,
            end=args.end,
            today=today,
            logger=logger,
        )
    if args.report == "monthly":
        return await monthly_report(
            database_url=database_url,
            directory=components.directory,
            start_year_month=args.start,
            end_year_month=args.end,
            logger=logger,
        )
    if args.report == "yearly":
        return await yearly_report(
            database_url=database_url,
            directory=components.directory,
            start_year=args.start,
            end_year=args.end,
            current_year=today.year,
            logger=logger,
        )
    rows = await store_report_by_day(
        database_url=database_url,
        directory=components.directory,
        report_source=components.report_source,
        store_codes=_parse_codes(args.stores),
        start=args.start,
        end=args.end,
        today=today,
        logger=logger,
    )
    return pivot_by_day(rows) if args.pivot else rows


async def _serve(components: SyncComponents, logger: JsonLogger, app_config) -> int:
    trigger = build_trigger(app_config, components, logger=logger)
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers.
            pass

    log_event(logger=logger, phase="scheduler", message="serving scheduled syncs")
    runs = await trigger.serve(stop_event)
    log_event(logger=logger, phase="scheduler", message="scheduler stopped", runs=runs)
    return 0


async def _run_async(args: argparse.Namespace) -> int:
    run_id = args.run_id or new_run_id()
    try:
        app_config = get_config()
    except ConfigError as exc:
        logger = JsonLogger(run_id=run_id, log_file_path=None)
        log_event(logger=logger, phase="prereq", status="error", message=str(exc))
        logger.close()
        return 2

    logger = get_logger(run_id=run_id)

    components = build_components(app_config, logger=logger)
    try:
        if args.command == "serve":
            return await _serve(components, logger, app_config)
        if args.command == "report":
            rows = await _report(args, components, logger, app_config.database_url)
            _emit_rows(rows)
            return 0

        handlers = {
            "sync-daily": _sync_daily,
            "sync-monthly": _sync_monthly,
            "sync-yearly": _sync_yearly,
        }
        result = await handlers[args.command](args, components, logger)
        _emit_rows([result])
        return 0
    except ValidationError as exc:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="error",
            message="invalid request",
            extras=error_extras(exc),
        )
        return 2
    except SalesSyncError as exc:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="error",
            message=f"{args.command} failed",
            extras=error_extras(exc),
        )
        return 1
    except Exception as exc:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="error",
            message=f"{args.command} failed with unexpected error",
            extras=error_extras(exc),
        )
        return 1
    finally:
        await dispose_engines()
        logger.close()


def _run_db_upgrade(args: argparse.Namespace) -> int:
    logger = JsonLogger(run_id=args.run_id or new_run_id(), log_file_path=None)
    try:
        app_config = get_config()
        log_event(logger=logger, phase="db", message="running migrations", revision=args.revision)
        run_alembic_upgrade(
            args.revision,
            database_url=app_config.database_url,
            alembic_config_path=app_config.alembic_config,
        )
    except Exception as exc:
        log_event(
            logger=logger,
            phase="db",
            status="error",
            message="migration failed",
            extras=error_extras(exc),
        )
        return 1
    finally:
        logger.close()
    return 0


def _add_run_id(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--run_id", dest="run_id", type=str, default=None, help="Override generated run id")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sales_sync", description="Sales aggregation and sync pipeline")
    subparsers = parser.add_subparsers(dest="command", required=True)

    daily = subparsers.add_parser("sync-daily", help="Sync daily totals from the report source (default: yesterday)")
    daily.add_argument("--start", type=_parse_date, default=None)
    daily.add_argument("--end", type=_parse_date, default=None)
    daily.add_argument("--stores", type=str, default=None, help="Comma separated store codes (max 50)")
    _add_run_id(daily)

    monthly = subparsers.add_parser(
        "sync-monthly", help="Roll daily totals up into months (default: current month, previous on the 1st)"
    )
    monthly.add_argument("--start", type=_parse_date, default=None)
    monthly.add_argument("--end", type=_parse_date, default=None)
    _add_run_id(monthly)

    yearly = subparsers.add_parser("sync-yearly", help="Roll monthly totals up into a year (default: current year)")
    yearly.add_argument("--year", type=int, default=None)
    _add_run_id(yearly)

    report = subparsers.add_parser("report", help="Print a zero-filled sales report as JSON lines")
    report_sub = report.add_subparsers(dest="report", required=True)
    report_daily = report_sub.add_parser("daily")
    report_daily.add_argument("--start", type=_parse_date, required=True)
    report_daily.add_argument("--end", type=_parse_date, required=True)
    report_monthly = report_sub.add_parser("monthly")
    report_monthly.add_argument("--start", type=str, required=True, help="YYYY-MM")
    report_monthly.add_argument("--end", type=str, required=True, help="YYYY-MM")
    report_yearly = report_sub.add_parser("yearly")
    report_yearly.add_argument("--start", type=int, required=True)
    report_yearly.add_argument("--end", type=int, required=True)
    report_by_day = report_sub.add_parser("by-day")
    report_by_day.add_argument("--stores", type=str, required=True)
    report_by_day.add_argument("--start", type=_parse_date, required=True)
    report_by_day.add_argument("--end", type=_parse_date, required=True)
    report_by_day.add_argument("--pivot", action="store_true", help="One row per day with totals keyed by store id")
    for sub in (report_daily, report_monthly, report_yearly, report_by_day):
        _add_run_id(sub)

    serve = subparsers.add_parser("serve", help="Run the schedule loop until terminated")
    _add_run_id(serve)

    db_parser = subparsers.add_parser("db", help="Database utilities")
    db_sub = db_parser.add_subparsers(dest="db_command", required=True)
    upgrade = db_sub.add_parser("upgrade", help="Run Alembic migrations")
    upgrade.add_argument("--revision", default="head")
    _add_run_id(upgrade)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "db":
        return _run_db_upgrade(args)
    return asyncio.run(_run_async(args))
