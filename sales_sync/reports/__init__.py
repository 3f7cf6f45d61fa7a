from sales_sync.reports.data import (
    DailyReportRow,
    DayPivotRow,
    ShareReportRow,
    StoreDayRow,
    daily_report,
    monthly_report,
    pivot_by_day,
    store_report_by_day,
    yearly_report,
)

__all__ = [
    "DailyReportRow",
    "DayPivotRow",
    "ShareReportRow",
    "StoreDayRow",
    "daily_report",
    "monthly_report",
    "pivot_by_day",
    "store_report_by_day",
    "yearly_report",
]
