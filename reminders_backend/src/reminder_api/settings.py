from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/reminders.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - ENABLE_TRIGGER_AUTH: 'true' to require a bearer token on the job trigger (default: false)
    - TRIGGER_TOKEN: expected bearer token (required when ENABLE_TRIGGER_AUTH=true)
    - REMINDER_TIMEZONE: IANA zone used to decide what "today" is. Default 'UTC'
    - ENABLE_SCHEDULER: 'true' to run the reminder job in-process once a day (default: false)
    - REMINDER_CRON_HOUR: hour of day (0..23) for the in-process run. Default 8
    - LOG_LEVEL: root log level. Default 'INFO'
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    enable_trigger_auth: bool
    trigger_token: Optional[str]
    reminder_timezone: str
    enable_scheduler: bool
    reminder_cron_hour: int
    log_level: str


_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_bool(value: str, default: bool = False) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_hour(value: str, default: int) -> int:
    try:
        hour = int(value.strip())
    except ValueError:
        return default
    return hour if 0 <= hour <= 23 else default


def _parse_timezone(value: str, default: str) -> str:
    name = value.strip()
    if not name:
        return default
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return default
    return name


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        backend = "memory"

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/reminders.db").strip()
    origins = _parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*"))

    enable_trigger_auth = _parse_bool(_get_env("ENABLE_TRIGGER_AUTH", "false"), False)
    trigger_token = os.getenv("TRIGGER_TOKEN") if enable_trigger_auth else None

    log_level = _get_env("LOG_LEVEL", "INFO").strip().upper()
    if log_level not in _LOG_LEVELS:
        log_level = "INFO"

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=origins,
        enable_trigger_auth=enable_trigger_auth,
        trigger_token=trigger_token,
        reminder_timezone=_parse_timezone(_get_env("REMINDER_TIMEZONE", "UTC"), "UTC"),
        enable_scheduler=_parse_bool(_get_env("ENABLE_SCHEDULER", "false"), False),
        reminder_cron_hour=_parse_hour(_get_env("REMINDER_CRON_HOUR", "8"), 8),
        log_level=log_level,
    )
