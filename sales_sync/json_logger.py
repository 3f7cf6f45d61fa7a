"""Newline-delimited JSON events for sync runs.

Every event carries ``run_id``, ``ts``, ``phase``, ``status`` and ``message``;
engines bind ``tier`` so a single log file can hold interleaved daily, monthly
and yearly runs. Events go to a stream (stdout by default) and, when
``JSON_LOG_FILE`` is set, are appended to that file as well.
"""
from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Dict, Optional

__all__ = ["JsonLogger", "error_extras", "get_logger", "log_event", "new_run_id"]

STATUSES = ("ok", "warn", "error")
_AUTO = object()


def new_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S%f")


def _configured_log_file() -> Optional[Path]:
    from sales_sync.config import get_config

    raw = get_config().json_log_file.strip()
    return _prepare_log_file(raw)


def _prepare_log_file(raw: Optional[str]) -> Optional[Path]:
    if not raw:
        return None
    path = Path(raw).expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


class _Sink:
    """Shared output targets; bound children write through their parent's sink."""

    def __init__(self, stream: IO[str], log_file: Optional[Path]) -> None:
        self.stream = stream
        self.log_file = log_file
        self.file_handle: Optional[IO[str]] = open(log_file, "a", encoding="utf-8") if log_file else None
        self.closed = False

    def write(self, line: str) -> None:
        if self.closed:
            return
        self.stream.write(line + "\n")
        self.stream.flush()
        if self.file_handle is not None:
            self.file_handle.write(line + "\n")
            self.file_handle.flush()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.file_handle is not None:
            self.file_handle.close()
            self.file_handle = None


class JsonLogger:
    def __init__(
        self,
        run_id: Optional[str] = None,
        stream: Optional[IO[str]] = None,
        *,
        log_file_path: Any = _AUTO,
    ) -> None:
        self.run_id = run_id or new_run_id()
        log_file = _configured_log_file() if log_file_path is _AUTO else _prepare_log_file(log_file_path)
        self._sink = _Sink(stream or sys.stdout, log_file)
        self._owns_sink = True
        self.context: Dict[str, Any] = {"run_id": self.run_id}

    @property
    def log_file_path(self) -> Optional[str]:
        return str(self._sink.log_file) if self._sink.log_file else None

    @property
    def closed(self) -> bool:
        return self._sink.closed

    def bind(self, **context: Any) -> "JsonLogger":
        child = object.__new__(JsonLogger)
        child.run_id = self.run_id
        child._sink = self._sink
        child._owns_sink = False
        child.context = {**self.context, **context}
        return child

    def emit(self, *, phase: str, status: str = "ok", message: str = "", **fields: Any) -> None:
        if status not in STATUSES:
            raise ValueError(f"unknown event status {status!r}")
        event = {**self.context, "phase": phase, "status": status, "message": message, **fields}
        event.setdefault("ts", datetime.now(timezone.utc).isoformat())
        self._sink.write(json.dumps(event, default=str, ensure_ascii=False))

    def info(self, *, phase: str, message: str = "", **fields: Any) -> None:
        self.emit(phase=phase, status="ok", message=message, **fields)

    def warn(self, *, phase: str, message: str, **fields: Any) -> None:
        self.emit(phase=phase, status="warn", message=message, **fields)

    def error(self, *, phase: str, message: str, **fields: Any) -> None:
        self.emit(phase=phase, status="error", message=message, **fields)

    def close(self) -> None:
        # only the root logger releases the file handle
        if self._owns_sink:
            self._sink.close()


def get_logger(run_id: Optional[str] = None) -> JsonLogger:
    return JsonLogger(run_id=run_id)


def log_event(*, logger: JsonLogger, phase: str, status: str = "ok", message: str = "", **extras: Any) -> None:
    logger.emit(phase=phase, status=status, message=message, **extras)


def error_extras(exc: BaseException) -> Dict[str, str]:
    return {"error": str(exc), "exc_type": type(exc).__name__}
