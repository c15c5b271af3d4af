"""Client-side dashboard state kept fresh by mount, polling and push triggers."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from cli.client import TransportError
from services.export import export_filename

logger = logging.getLogger(__name__)

DOWNLOAD_WINDOWS = (1, 7, 30, 90)


class DashboardPhase(str, Enum):
    loading = "loading"
    ready = "ready"
    error = "error"


class RefreshTrigger(str, Enum):
    mount = "mount"
    manual = "manual"
    poll = "poll"
    push = "push"


# Failures from these are logged and the current view is kept.
_BACKGROUND_TRIGGERS = frozenset({RefreshTrigger.poll, RefreshTrigger.push})


class DownloadError(RuntimeError):
    """A CSV download could not be produced; shown to the user as an alert."""


class Closeable(Protocol):
    def close(self) -> None: ...


class DashboardSource(Protocol):
    def list_devices(self) -> List[Dict[str, Any]]: ...

    def recent_readings(self, device_id: str, window_hours: int) -> List[Dict[str, Any]]: ...

    def export_csv(self, days: int) -> str: ...

    def subscribe(self, callback: Callable[[Dict[str, Any]], None]) -> Closeable: ...


@dataclass
class DashboardView:
    phase: DashboardPhase = DashboardPhase.loading
    devices: List[Dict[str, Any]] = field(default_factory=list)
    history: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    error: Optional[str] = None
    refreshed_at: Optional[datetime] = None


class DashboardClient:
    """Holds the dashboard view and replaces it wholesale on every refresh.

    Overlapping refreshes from the poll thread and the push subscription are
    not deduplicated; each one performs a full read and the last to finish
    wins.
    """

    def __init__(
        self,
        source: DashboardSource,
        poll_interval: float = 30.0,
        history_hours: int = 48,
        on_update: Optional[Callable[[DashboardView], None]] = None,
    ) -> None:
        self.source = source
        self.poll_interval = poll_interval
        self.history_hours = history_hours
        self._on_update = on_update
        self._view = DashboardView()
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._poller: Optional[threading.Thread] = None
        self._subscription: Optional[Closeable] = None

    @property
    def view(self) -> DashboardView:
        with self._lock:
            return replace(
                self._view,
                devices=list(self._view.devices),
                history=dict(self._view.history),
            )

    def refresh(self, trigger: RefreshTrigger = RefreshTrigger.manual) -> DashboardView:
        background = trigger in _BACKGROUND_TRIGGERS
        if not background:
            self._publish(DashboardView(phase=DashboardPhase.loading))

        try:
            devices = self.source.list_devices()
            history = {
                device["id"]: self.source.recent_readings(device["id"], self.history_hours)
                for device in devices
            }
        except TransportError as exc:
            return self._refresh_failed(trigger, str(exc))
        except (KeyError, TypeError) as exc:
            return self._refresh_failed(
                trigger, f"Unexpected response from the monitor service: {exc!r}"
            )

        logger.debug(
            "Dashboard refreshed",
            extra={"trigger": trigger.value, "row_count": len(devices)},
        )
        return self._publish(
            DashboardView(
                phase=DashboardPhase.ready,
                devices=devices,
                history=history,
                refreshed_at=datetime.now(timezone.utc),
            )
        )

    def retry(self) -> DashboardView:
        return self.refresh(RefreshTrigger.manual)

    def start(self) -> None:
        """Load once, then keep the view fresh from the poll timer and the change stream."""
        self._stopped.clear()
        self.refresh(RefreshTrigger.mount)
        self._poller = threading.Thread(target=self._poll, name="dashboard-poll", daemon=True)
        self._poller.start()
        self._subscription = self.source.subscribe(
            lambda _reading: self.refresh(RefreshTrigger.push)
        )

    def stop(self) -> None:
        self._stopped.set()
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self._poller is not None:
            self._poller.join(timeout=5.0)
            self._poller = None

    def download(
        self,
        days: int,
        directory: Path,
        today: Optional[date] = None,
    ) -> Path:
        if days not in DOWNLOAD_WINDOWS:
            raise ValueError(f"Download window must be one of {DOWNLOAD_WINDOWS}, got {days}.")

        try:
            body = self.source.export_csv(days)
        except TransportError as exc:
            logger.error("Download failed: %s", exc, extra={"days": days})
            raise DownloadError("Failed to download data. Please try again.") from exc

        if len(body.strip().splitlines()) <= 1:
            raise DownloadError("No valid temperature data found for the selected period.")

        directory.mkdir(parents=True, exist_ok=True)
        path = directory / export_filename(days, today or datetime.now(timezone.utc).date())
        path.write_text(body, encoding="utf-8")
        logger.info("Saved export to %s", path, extra={"days": days})
        return path

    def _refresh_failed(self, trigger: RefreshTrigger, message: str) -> DashboardView:
        if trigger in _BACKGROUND_TRIGGERS:
            logger.warning(
                "Background refresh failed: %s",
                message,
                extra={"trigger": trigger.value},
            )
            return self.view
        logger.error(
            "Dashboard load failed: %s",
            message,
            extra={"trigger": trigger.value, "phase": DashboardPhase.error.value},
        )
        return self._publish(DashboardView(phase=DashboardPhase.error, error=message))

    def _poll(self) -> None:
        while not self._stopped.wait(self.poll_interval):
            try:
                self.refresh(RefreshTrigger.poll)
            except Exception:  # noqa: BLE001 - the next cycle tries again
                logger.exception(
                    "Dashboard poll cycle failed",
                    extra={"trigger": RefreshTrigger.poll.value},
                )

    def _publish(self, view: DashboardView) -> DashboardView:
        with self._lock:
            self._view = view
        if self._on_update is not None:
            self._on_update(view)
        return view
