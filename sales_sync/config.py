"""
CONFIG.PY: SINGLE SOURCE OF TRUTH

This module is the ONLY place allowed to read environment variables.

DATABASE_URL and REPORT_SOURCE_BASE_URL MUST EXIST. NO DEFAULTS.
Every other key has a documented default. Invalid values fail early with
ConfigError.

Config is loaded once per process and cached. To use a config value:

    from sales_sync.config import get_config

    config = get_config()
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import time
from functools import lru_cache
from pathlib import Path
from typing import Dict

from dotenv import load_dotenv


PROJECT_ROOT = Path(__file__).resolve().parents[1]

# OS env overrides values from .env
load_dotenv(PROJECT_ROOT / ".env")


logger = logging.getLogger(__name__)

REQUIRED_ENV_KEYS = [
    "DATABASE_URL",
    "REPORT_SOURCE_BASE_URL",
]

OPTIONAL_ENV_DEFAULTS: Dict[str, str] = {
    "PIPELINE_TIMEZONE": "America/Sao_Paulo",
    "ALEMBIC_CONFIG": "alembic.ini",
    "JSON_LOG_FILE": "",
    "REPORT_SOURCE_TIMEOUT_SECONDS": "120",
    "SYNC_BATCH_SIZE": "500",
    "DAILY_SYNC_ENABLED": "true",
    "MONTHLY_SYNC_ENABLED": "true",
    "WEEKLY_CORRECTION_ENABLED": "false",
    "DAILY_SYNC_TIME": "01:00",
    "MONTHLY_SYNC_TIME": "01:30",
    "WEEKLY_CORRECTION_TIME": "02:00",
}

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


def _require_env(key: str) -> str:
    value = os.getenv(key)
    if value is None:
        message = f"Missing required environment variable: {key}"
        logger.error(message)
        raise ConfigError(message)
    stripped = value.strip()
    if not stripped:
        message = f"Environment variable {key} cannot be blank"
        logger.error(message)
        raise ConfigError(message)
    return stripped


def _optional_env(key: str) -> str:
    value = os.getenv(key)
    if value is None or not value.strip():
        return OPTIONAL_ENV_DEFAULTS[key]
    return value.strip()


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    message = f"Config key {key} must be a boolean string; got {value!r}"
    logger.error(message)
    raise ConfigError(message)


def _parse_int(value: str, *, key: str, minimum: int = 1) -> int:
    try:
        parsed = int(value.strip())
    except (TypeError, ValueError):
        message = f"Config key {key} must be an integer; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    if parsed < minimum:
        message = f"Config key {key} must be >= {minimum}; got {parsed}"
        logger.error(message)
        raise ConfigError(message)
    return parsed


def _parse_time(value: str, *, key: str) -> time:
    try:
        hours, minutes = value.strip().split(":", 1)
        return time(hour=int(hours), minute=int(minutes))
    except ValueError:
        message = f"Config key {key} must look like HH:MM; got {value!r}"
        logger.error(message)
        raise ConfigError(message)


def _clean_url(value: str, *, key: str) -> str:
    stripped = value.strip().rstrip("/")
    if not stripped:
        message = f"Config key {key} cannot be blank"
        logger.error(message)
        raise ConfigError(message)
    return stripped


@dataclass(slots=True, frozen=True)
class Config:
    database_url: str
    report_source_base_url: str
    pipeline_timezone: str
    alembic_config: str
    json_log_file: str
    report_source_timeout_seconds: int
    sync_batch_size: int
    daily_sync_enabled: bool
    monthly_sync_enabled: bool
    weekly_correction_enabled: bool
    daily_sync_time: time
    monthly_sync_time: time
    weekly_correction_time: time

    @classmethod
    def load_from_env(cls) -> Config:
        required = {key: _require_env(key) for key in REQUIRED_ENV_KEYS}
        optional = {key: _optional_env(key) for key in OPTIONAL_ENV_DEFAULTS}

        return cls(
            database_url=required["DATABASE_URL"],
            report_source_base_url=_clean_url(
                required["REPORT_SOURCE_BASE_URL"], key="REPORT_SOURCE_BASE_URL"
            ),
            pipeline_timezone=optional["PIPELINE_TIMEZONE"],
            alembic_config=optional["ALEMBIC_CONFIG"],
            json_log_file=optional["JSON_LOG_FILE"],
            report_source_timeout_seconds=_parse_int(
                optional["REPORT_SOURCE_TIMEOUT_SECONDS"], key="REPORT_SOURCE_TIMEOUT_SECONDS"
            ),
            sync_batch_size=_parse_int(optional["SYNC_BATCH_SIZE"], key="SYNC_BATCH_SIZE"),
            daily_sync_enabled=_parse_bool(optional["DAILY_SYNC_ENABLED"], key="DAILY_SYNC_ENABLED"),
            monthly_sync_enabled=_parse_bool(
                optional["MONTHLY_SYNC_ENABLED"], key="MONTHLY_SYNC_ENABLED"
            ),
            weekly_correction_enabled=_parse_bool(
                optional["WEEKLY_CORRECTION_ENABLED"], key="WEEKLY_CORRECTION_ENABLED"
            ),
            daily_sync_time=_parse_time(optional["DAILY_SYNC_TIME"], key="DAILY_SYNC_TIME"),
            monthly_sync_time=_parse_time(optional["MONTHLY_SYNC_TIME"], key="MONTHLY_SYNC_TIME"),
            weekly_correction_time=_parse_time(
                optional["WEEKLY_CORRECTION_TIME"], key="WEEKLY_CORRECTION_TIME"
            ),
        )


@lru_cache(maxsize=1)
def get_config() -> Config:
    return Config.load_from_env()
