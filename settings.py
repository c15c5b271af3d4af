from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


_DATABASE_URL_ENV = "DATABASE_URL"
_HISTORY_WINDOW_ENV = "HISTORY_WINDOW_HOURS"
_HISTORY_LIMIT_ENV = "HISTORY_ROW_LIMIT"
_HEARTBEAT_ENV = "EVENT_HEARTBEAT_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    database_url: str
    history_window_hours: int
    history_row_limit: int
    event_heartbeat_seconds: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_url=_read_str_env(_DATABASE_URL_ENV, "sqlite:///./tmp/readings.db"),
        history_window_hours=_read_positive_int(_HISTORY_WINDOW_ENV, 48),
        history_row_limit=_read_positive_int(_HISTORY_LIMIT_ENV, 1000),
        event_heartbeat_seconds=_read_positive_float(_HEARTBEAT_ENV, 15.0),
        log_level=_read_log_level("INFO"),
    )
