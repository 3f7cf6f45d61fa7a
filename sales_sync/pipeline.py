from __future__ import annotations

from dataclasses import dataclass

from sales_sync.aggregate_store import DAILY_TIER, MONTHLY_TIER, YEARLY_TIER, AggregateStore
from sales_sync.config import Config
from sales_sync.dates import Clock, get_timezone, system_clock
from sales_sync.json_logger import JsonLogger
from sales_sync.report_source import ReportSource
from sales_sync.scheduler import ScheduleSettings, ScheduleTrigger
from sales_sync.stores import ActiveStoreDirectory
from sales_sync.sync import DailySyncEngine, MonthlySyncEngine, YearlySyncEngine


@dataclass
class SyncComponents:
    clock: Clock
    directory: ActiveStoreDirectory
    report_source: ReportSource
    daily: DailySyncEngine
    monthly: MonthlySyncEngine
    yearly: YearlySyncEngine


def build_components(config: Config, *, logger: JsonLogger, clock: Clock | None = None) -> SyncComponents:
    clock = clock or system_clock(get_timezone(config.pipeline_timezone))
    directory = ActiveStoreDirectory(config.database_url)
    report_source = ReportSource(
        config.report_source_base_url,
        timeout_seconds=config.report_source_timeout_seconds,
        clock=clock,
    )

    def store(tier):
        return AggregateStore(tier, config.database_url, batch_size=config.sync_batch_size)

    return SyncComponents(
        clock=clock,
        directory=directory,
        report_source=report_source,
        daily=DailySyncEngine(
            directory=directory,
            report_source=report_source,
            store=store(DAILY_TIER),
            clock=clock,
            logger=logger,
        ),
        monthly=MonthlySyncEngine(
            directory=directory,
            daily_database_url=config.database_url,
            store=store(MONTHLY_TIER),
            clock=clock,
            logger=logger,
        ),
        yearly=YearlySyncEngine(
            directory=directory,
            monthly_database_url=config.database_url,
            store=store(YEARLY_TIER),
            clock=clock,
            logger=logger,
        ),
    )


def build_trigger(config: Config, components: SyncComponents, *, logger: JsonLogger) -> ScheduleTrigger:
    settings = ScheduleSettings(
        daily_enabled=config.daily_sync_enabled,
        monthly_enabled=config.monthly_sync_enabled,
        weekly_correction_enabled=config.weekly_correction_enabled,
        daily_time=config.daily_sync_time,
        monthly_time=config.monthly_sync_time,
        weekly_correction_time=config.weekly_correction_time,
    )
    return ScheduleTrigger(
        daily=components.daily,
        monthly=components.monthly,
        clock=components.clock,
        logger=logger,
        settings=settings,
    )
