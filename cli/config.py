from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_POLL_INTERVAL = 30.0
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_HISTORY_HOURS = 48

_BASE_URL_ENV = "API_BASE_URL"
_POLL_INTERVAL_ENV = "DASHBOARD_POLL_INTERVAL"
_HTTP_TIMEOUT_ENV = "CLI_HTTP_TIMEOUT"
_HISTORY_HOURS_ENV = "DASHBOARD_HISTORY_HOURS"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    history_hours: int = DEFAULT_HISTORY_HOURS


def _read_float(value: Optional[str], default: float) -> float:
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


def load_config(
    base_url: Optional[str] = None,
    poll_interval: Optional[float] = None,
    http_timeout: Optional[float] = None,
    history_hours: Optional[int] = None,
) -> CLIConfig:
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if poll_interval is None:
        poll_interval = _read_float(os.getenv(_POLL_INTERVAL_ENV), DEFAULT_POLL_INTERVAL)
    if http_timeout is None:
        http_timeout = _read_float(os.getenv(_HTTP_TIMEOUT_ENV), DEFAULT_HTTP_TIMEOUT)
    if history_hours is None:
        history_hours = int(
            _read_float(os.getenv(_HISTORY_HOURS_ENV), DEFAULT_HISTORY_HOURS)
        )
    return CLIConfig(
        base_url=url.rstrip("/"),
        poll_interval=poll_interval,
        http_timeout=http_timeout,
        history_hours=history_hours,
    )
