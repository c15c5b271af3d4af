from __future__ import annotations

import threading

import httpx
import pytest

from cli.client import ApiClient, TransportError
from cli.config import CLIConfig


def _client(handler) -> ApiClient:
    return ApiClient(CLIConfig(base_url="http://monitor.test"), transport=httpx.MockTransport(handler))


def test_list_devices_and_history_requests() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/devices":
            return httpx.Response(200, json=[{"id": "dev-1", "name": "Greenhouse"}])
        return httpx.Response(200, json=[{"temperature": 21.0}])

    client = _client(handler)
    try:
        devices = client.list_devices()
        readings = client.recent_readings("dev-1", 24)
    finally:
        client.close()

    assert devices == [{"id": "dev-1", "name": "Greenhouse"}]
    assert readings == [{"temperature": 21.0}]
    assert seen[1].url.path == "/devices/dev-1/readings"
    assert seen[1].url.params["window_hours"] == "24"


def test_export_csv_returns_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["days"] == "30"
        return httpx.Response(200, text="Device Name,Particle ID,Temperature (°C),Timestamp\n")

    client = _client(handler)
    try:
        body = client.export_csv(30)
    finally:
        client.close()

    assert body.startswith("Device Name")


def test_error_status_becomes_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"detail": "Failed to list active devices."})

    client = _client(handler)
    try:
        with pytest.raises(TransportError) as exc_info:
            client.list_devices()
    finally:
        client.close()

    assert "500" in str(exc_info.value)
    assert "Failed to list active devices." in str(exc_info.value)


def test_non_json_body_becomes_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    client = _client(handler)
    try:
        with pytest.raises(TransportError, match="non-JSON body"):
            client.list_devices()
    finally:
        client.close()


def test_connection_failure_becomes_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    try:
        with pytest.raises(TransportError, match="connection refused"):
            client.export_csv(7)
    finally:
        client.close()


def test_send_webhook_returns_error_responses() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/"
        return httpx.Response(404, json={"error": "Device not found or inactive"})

    client = _client(handler)
    try:
        response = client.send_webhook({"coreid": "nobody", "data": "20", "published_at": "2024-01-01T00:00:00Z"})
    finally:
        client.close()

    assert response.status_code == 404
    assert response.json() == {"error": "Device not found or inactive"}


def test_subscribe_dispatches_reading_events_only() -> None:
    stream_body = (
        b": connected\n\n"
        b"event: ping\ndata: {\"ignored\": true}\n\n"
        b"event: reading\ndata: {\"temperature\": 22.5, \"device_id\": \"dev-1\"}\n\n"
    )

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/events"
        return httpx.Response(200, content=stream_body, headers={"Content-Type": "text/event-stream"})

    received: list[dict] = []
    delivered = threading.Event()

    def on_reading(payload: dict) -> None:
        received.append(payload)
        delivered.set()

    client = _client(handler)
    subscription = client.subscribe(on_reading, retry_delay=0.5)
    try:
        assert delivered.wait(timeout=2.0)
    finally:
        subscription.close()
        client.close()

    assert subscription.closed is True
    assert received[0] == {"temperature": 22.5, "device_id": "dev-1"}
