from sales_sync.sync.common import MonthlySyncResult, SyncResult, YearlySyncResult
from sales_sync.sync.daily import DailySyncEngine
from sales_sync.sync.monthly import MonthlySyncEngine
from sales_sync.sync.yearly import YearlySyncEngine

__all__ = [
    "DailySyncEngine",
    "MonthlySyncEngine",
    "MonthlySyncResult",
    "SyncResult",
    "YearlySyncEngine",
    "YearlySyncResult",
]
