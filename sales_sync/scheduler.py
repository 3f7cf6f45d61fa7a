"""Scheduled and manual entry points into the sync engines.

Every engine call goes through one of two thin wrappers:

* ``run_scheduled`` catches and logs any exception so the next firing is
  unaffected;
* ``run_manual`` logs and re-raises the original exception unchanged.

``ScheduleTrigger`` owns the date math (driven by an injected clock) and a
single asyncio loop that fires the daily, monthly and optional weekly
correction jobs at their configured local times.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Tuple, TypeVar

from sales_sync.dates import Clock, daily_sync_date, monthly_sync_window, weekly_correction_window
from sales_sync.json_logger import JsonLogger, error_extras, log_event
from sales_sync.sync import DailySyncEngine, MonthlySyncEngine

T = TypeVar("T")

SUNDAY = 6


async def run_scheduled(
    job: str, call: Callable[[], Awaitable[T]], *, logger: JsonLogger
) -> Optional[T]:
    log_event(logger=logger, phase="scheduler", message=f"{job} started", job=job, trigger="scheduled")
    try:
        result = await call()
    except Exception as exc:
        log_event(
            logger=logger,
            phase="scheduler",
            status="error",
            message=f"{job} failed; waiting for the next scheduled run",
            job=job,
            trigger="scheduled",
            extras=error_extras(exc),
        )
        return None
    log_event(logger=logger, phase="scheduler", message=f"{job} finished", job=job, trigger="scheduled")
    return result


async def run_manual(job: str, call: Callable[[], Awaitable[T]], *, logger: JsonLogger) -> T:
    log_event(logger=logger, phase="manual", message=f"{job} started", job=job, trigger="manual")
    try:
        result = await call()
    except Exception as exc:
        log_event(
            logger=logger,
            phase="manual",
            status="error",
            message=f"{job} failed",
            job=job,
            trigger="manual",
            extras=error_extras(exc),
        )
        raise
    log_event(logger=logger, phase="manual", message=f"{job} finished", job=job, trigger="manual")
    return result


@dataclass(frozen=True)
class ScheduleSettings:
    daily_enabled: bool = True
    monthly_enabled: bool = True
    weekly_correction_enabled: bool = False
    daily_time: time = time(1, 0)
    monthly_time: time = time(1, 30)
    weekly_correction_time: time = time(2, 0)


def next_occurrence(now: datetime, at: time, *, weekday: Optional[int] = None) -> datetime:
    """Return the first moment strictly after ``now`` matching ``at`` (and ``weekday``)."""

    candidate = now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    if weekday is not None:
        candidate += timedelta(days=(weekday - candidate.weekday()) % 7)
    return candidate


class ScheduleTrigger:
    def __init__(
        self,
        *,
        daily: DailySyncEngine,
        monthly: MonthlySyncEngine,
        clock: Clock,
        logger: JsonLogger,
        settings: ScheduleSettings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.daily = daily
        self.monthly = monthly
        self.clock = clock
        self.logger = logger.bind(component="scheduler")
        self.settings = settings or ScheduleSettings()
        self.sleep = sleep

    def daily_dates(self) -> Tuple[date, date]:
        target = daily_sync_date(self.clock)
        return target, target

    def monthly_dates(self) -> Tuple[date, date]:
        return monthly_sync_window(self.clock)

    def weekly_correction_dates(self) -> Tuple[date, date]:
        return weekly_correction_window(self.clock)

    async def run_daily(self):
        start, end = self.daily_dates()
        return await run_scheduled("daily_sync", lambda: self.daily.sync(start, end), logger=self.logger)

    async def run_monthly(self):
        start, end = self.monthly_dates()
        return await run_scheduled("monthly_sync", lambda: self.monthly.sync(start, end), logger=self.logger)

    async def run_weekly_correction(self):
        start, end = self.weekly_correction_dates()
        return await run_scheduled(
            "weekly_correction", lambda: self.daily.sync(start, end), logger=self.logger
        )

    def _jobs(self) -> List[Tuple[str, time, Optional[int]]]:
        jobs: List[Tuple[str, time, Optional[int]]] = []
        if self.settings.daily_enabled:
            jobs.append(("daily_sync", self.settings.daily_time, None))
        if self.settings.monthly_enabled:
            jobs.append(("monthly_sync", self.settings.monthly_time, None))
        if self.settings.weekly_correction_enabled:
            jobs.append(("weekly_correction", self.settings.weekly_correction_time, SUNDAY))
        return jobs

    def upcoming(self, now: datetime) -> List[Tuple[datetime, str]]:
        """Return the next firing time of every enabled job, soonest first."""

        return sorted((next_occurrence(now, at, weekday=weekday), job) for job, at, weekday in self._jobs())

    async def fire(self, job: str):
        handlers = {
            "daily_sync": self.run_daily,
            "monthly_sync": self.run_monthly,
            "weekly_correction": self.run_weekly_correction,
        }
        return await handlers[job]()

    def _advance(self, job: str, due: datetime) -> datetime:
        """Next due time after ``due``; whole periods missed while busy collapse into one firing."""

        at, weekday = next((at, weekday) for name, at, weekday in self._jobs() if name == job)
        following = next_occurrence(due, at, weekday=weekday)
        now = self.clock()
        if following <= now:
            log_event(
                logger=self.logger,
                phase="scheduler",
                status="warn",
                message="missed firings collapsed into the run just finished",
                job=job,
                due=due,
            )
            following = next_occurrence(now, at, weekday=weekday)
        return following

    async def _pause(self, seconds: float, stop: asyncio.Event) -> None:
        sleeper = asyncio.ensure_future(self.sleep(seconds))
        stopper = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [task for task in (sleeper, stopper) if not task.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def serve(self, stop_event: asyncio.Event | None = None, *, max_runs: int | None = None) -> int:
        """Fire jobs until ``stop_event`` is set; returns the number of firings.

        Each job keeps its own due time, advanced from its previous due time,
        so a job whose slot passes while another job runs fires late instead
        of being skipped. The stop event is checked only between firings.
        """

        stop = stop_event or asyncio.Event()
        next_due = {job: when for when, job in self.upcoming(self.clock())}
        if not next_due:
            log_event(logger=self.logger, phase="scheduler", status="warn", message="no jobs enabled")
            return 0
        runs = 0
        while not stop.is_set():
            if max_runs is not None and runs >= max_runs:
                break
            now = self.clock()
            when, job = min((due, name) for name, due in next_due.items())
            if when > now:
                log_event(logger=self.logger, phase="scheduler", message="waiting for next job", job=job, at=when)
                await self._pause((when - now).total_seconds(), stop)
                continue
            await self.fire(job)
            runs += 1
            next_due[job] = self._advance(job, when)
        return runs
