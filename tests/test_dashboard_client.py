from __future__ import annotations

import logging
import threading
import time
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import pytest

from cli.client import TransportError
from cli.dashboard import (
    DashboardClient,
    DashboardPhase,
    DashboardView,
    DownloadError,
    RefreshTrigger,
)


class StubSubscription:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


class StubSource:
    def __init__(self) -> None:
        self.devices: List[Dict[str, Any]] = [
            {"id": "dev-1", "name": "Greenhouse", "particle_id": "abc123", "latest_reading": None},
            {"id": "dev-2", "name": "Garage", "particle_id": "def456", "latest_reading": None},
        ]
        self.readings: Dict[str, List[Dict[str, Any]]] = {
            "dev-1": [{"temperature": 20.0}, {"temperature": 21.0}],
            "dev-2": [],
        }
        self.csv_body = "Device Name,Particle ID,Temperature (°C),Timestamp\nGreenhouse,abc123,21,2024-01-01T00:00:00+00:00\n"
        self.fail_with: Optional[Exception] = None
        self.list_calls = 0
        self.history_calls: List[tuple[str, int]] = []
        self.callback: Optional[Callable[[Dict[str, Any]], None]] = None
        self.subscription = StubSubscription()

    def list_devices(self) -> List[Dict[str, Any]]:
        self.list_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return [dict(device) for device in self.devices]

    def recent_readings(self, device_id: str, window_hours: int) -> List[Dict[str, Any]]:
        self.history_calls.append((device_id, window_hours))
        return list(self.readings[device_id])

    def export_csv(self, days: int) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        return self.csv_body

    def subscribe(self, callback: Callable[[Dict[str, Any]], None]) -> StubSubscription:
        self.callback = callback
        return self.subscription


def test_mount_refresh_loads_devices_and_history() -> None:
    source = StubSource()
    updates: List[DashboardView] = []
    client = DashboardClient(source, history_hours=24, on_update=updates.append)

    view = client.refresh(RefreshTrigger.mount)

    assert view.phase is DashboardPhase.ready
    assert [device["name"] for device in view.devices] == ["Greenhouse", "Garage"]
    assert view.history == {"dev-1": source.readings["dev-1"], "dev-2": []}
    assert source.history_calls == [("dev-1", 24), ("dev-2", 24)]
    assert view.refreshed_at is not None
    assert [update.phase for update in updates] == [DashboardPhase.loading, DashboardPhase.ready]


def test_mount_failure_moves_to_error_phase() -> None:
    source = StubSource()
    source.fail_with = TransportError("Request to /devices failed: connection refused")
    client = DashboardClient(source)

    view = client.refresh(RefreshTrigger.mount)

    assert view.phase is DashboardPhase.error
    assert "connection refused" in (view.error or "")
    assert view.devices == []


def test_retry_recovers_from_error() -> None:
    source = StubSource()
    source.fail_with = TransportError("down")
    client = DashboardClient(source)
    client.refresh(RefreshTrigger.mount)

    source.fail_with = None
    view = client.retry()

    assert view.phase is DashboardPhase.ready
    assert client.view.error is None


@pytest.mark.parametrize("trigger", [RefreshTrigger.poll, RefreshTrigger.push])
def test_background_failure_keeps_current_view(trigger: RefreshTrigger, caplog) -> None:
    source = StubSource()
    client = DashboardClient(source)
    client.refresh(RefreshTrigger.mount)
    source.fail_with = TransportError("timeout")

    with caplog.at_level(logging.WARNING):
        view = client.refresh(trigger)

    assert view.phase is DashboardPhase.ready
    assert len(view.devices) == 2
    records = [record for record in caplog.records if record.name == "cli.dashboard"]
    assert records
    assert getattr(records[0], "trigger", None) == trigger.value


def test_background_refresh_replaces_view_wholesale() -> None:
    source = StubSource()
    client = DashboardClient(source)
    client.refresh(RefreshTrigger.mount)

    source.devices = source.devices[:1]
    source.readings["dev-1"] = [{"temperature": 25.0}]
    view = client.refresh(RefreshTrigger.push)

    assert [device["id"] for device in view.devices] == ["dev-1"]
    assert view.history == {"dev-1": [{"temperature": 25.0}]}


def test_view_property_returns_a_copy() -> None:
    source = StubSource()
    client = DashboardClient(source)
    client.refresh(RefreshTrigger.mount)

    snapshot = client.view
    snapshot.devices.clear()

    assert len(client.view.devices) == 2


def test_push_notification_triggers_full_refetch() -> None:
    source = StubSource()
    client = DashboardClient(source, poll_interval=60.0)
    client.start()
    try:
        assert source.list_calls == 1
        assert source.callback is not None

        source.callback({"temperature": 22.0})

        assert source.list_calls == 2
        assert len(source.history_calls) == 4
    finally:
        client.stop()

    assert source.subscription.closed is True


def test_poll_timer_refreshes_in_background() -> None:
    source = StubSource()
    refreshed = threading.Event()

    def on_update(view: DashboardView) -> None:
        if source.list_calls >= 3:
            refreshed.set()

    client = DashboardClient(source, poll_interval=0.01, on_update=on_update)
    client.start()
    try:
        assert refreshed.wait(timeout=2.0)
    finally:
        client.stop()

    calls_after_stop = source.list_calls
    time.sleep(0.05)
    assert source.list_calls == calls_after_stop


def test_poll_keeps_running_after_unexpected_errors(caplog) -> None:
    source = StubSource()
    client = DashboardClient(source, poll_interval=0.02)
    client.start()
    try:
        source.fail_with = ValueError("response body was not JSON")
        deadline = time.monotonic() + 2.0
        while source.list_calls < 4 and time.monotonic() < deadline:
            time.sleep(0.01)

        assert source.list_calls >= 4
        assert client._poller is not None and client._poller.is_alive()
        assert client.view.phase is DashboardPhase.ready
        assert any(record.getMessage() == "Dashboard poll cycle failed" for record in caplog.records)
    finally:
        client.stop()


@pytest.mark.parametrize("trigger", [RefreshTrigger.poll, RefreshTrigger.push])
def test_malformed_device_keeps_view_on_background_refresh(trigger: RefreshTrigger) -> None:
    source = StubSource()
    client = DashboardClient(source)
    client.refresh(RefreshTrigger.mount)
    source.devices = [{"name": "No id"}]

    view = client.refresh(trigger)

    assert view.phase is DashboardPhase.ready
    assert len(view.devices) == 2


def test_malformed_device_on_mount_moves_to_error_phase() -> None:
    source = StubSource()
    source.devices = [{"name": "No id"}]
    client = DashboardClient(source)

    view = client.refresh(RefreshTrigger.mount)

    assert view.phase is DashboardPhase.error
    assert "Unexpected response" in (view.error or "")


def test_download_writes_named_csv(tmp_path) -> None:
    source = StubSource()
    client = DashboardClient(source)

    path = client.download(7, tmp_path / "exports", today=date(2024, 3, 1))

    assert path == tmp_path / "exports" / "temperature-data-7days-2024-03-01.csv"
    assert path.read_text(encoding="utf-8") == source.csv_body


def test_download_without_rows_raises(tmp_path) -> None:
    source = StubSource()
    source.csv_body = "Device Name,Particle ID,Temperature (°C),Timestamp\n"
    client = DashboardClient(source)

    with pytest.raises(DownloadError, match="No valid temperature data"):
        client.download(30, tmp_path)

    assert list(tmp_path.iterdir()) == []


def test_download_transport_failure_raises(tmp_path) -> None:
    source = StubSource()
    source.fail_with = TransportError("offline")
    client = DashboardClient(source)

    with pytest.raises(DownloadError, match="Failed to download data"):
        client.download(1, tmp_path)


def test_download_rejects_unsupported_window(tmp_path) -> None:
    client = DashboardClient(StubSource())

    with pytest.raises(ValueError):
        client.download(14, tmp_path)
