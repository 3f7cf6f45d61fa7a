"""Error taxonomy shared by the sync engines and the read-side reports."""
from __future__ import annotations

from typing import Any, Hashable


class SalesSyncError(Exception):
    """Base class for pipeline failures."""


class ValidationError(SalesSyncError):
    """Raised when request parameters are invalid, before any I/O happens."""


class UpstreamFetchError(SalesSyncError):
    """Raised when the report source is unreachable, times out or answers with an error status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(SalesSyncError):
    """Raised when an aggregate write fails."""

    def __init__(self, message: str, *, key: Any = None) -> None:
        super().__init__(message)
        self.key = key


class DataIntegrityWarning(UserWarning):
    """Duplicate natural key seen while reconciling or filling; the first row wins."""

    def __init__(self, key: Hashable, *, source: str) -> None:
        super().__init__(f"duplicate natural key {key!r} in {source}; keeping first occurrence")
        self.key = key
        self.source = source
