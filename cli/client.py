from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

import httpx

from cli.config import CLIConfig

logger = logging.getLogger(__name__)

ReadingCallback = Callable[[Dict[str, Any]], None]


class TransportError(RuntimeError):
    """A request to the monitor service failed or came back with an error status."""


def _describe_http_error(response: httpx.Response) -> str:
    detail: Any = None
    try:
        data = response.json()
        detail = data.get("detail") or data.get("error")
    except Exception:  # noqa: BLE001 - best effort parsing
        detail = response.text.strip()
    return f"status {response.status_code}: {detail or 'no detail provided.'}"


class EventSubscription:
    """Follows the ``/events`` stream on a daemon thread, reconnecting on failure."""

    def __init__(
        self,
        config: CLIConfig,
        callback: ReadingCallback,
        retry_delay: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=httpx.Timeout(config.http_timeout, read=None),
            transport=transport,
        )
        self._callback = callback
        self._retry_delay = retry_delay
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name="reading-events", daemon=True
        )

    @property
    def closed(self) -> bool:
        return self._stopped.is_set()

    def start(self) -> None:
        self._thread.start()

    def close(self) -> None:
        self._stopped.set()

    def _run(self) -> None:
        try:
            while not self._stopped.is_set():
                try:
                    self._consume()
                except httpx.HTTPError as exc:
                    logger.warning("Reading event stream interrupted: %s", exc)
                self._stopped.wait(self._retry_delay)
        finally:
            self._client.close()

    def _consume(self) -> None:
        with self._client.stream("GET", "/events") as response:
            response.raise_for_status()
            event_name: Optional[str] = None
            for line in response.iter_lines():
                if self._stopped.is_set():
                    return
                if not line:
                    event_name = None
                elif line.startswith("event:"):
                    event_name = line[len("event:"):].strip()
                elif line.startswith("data:") and event_name == "reading":
                    self._dispatch(line[len("data:"):].strip())

    def _dispatch(self, data: str) -> None:
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("Ignoring undecodable reading event %r", data)
            return
        try:
            self._callback(payload)
        except Exception:  # noqa: BLE001 - keep following the stream
            logger.exception("Reading event callback failed")


class ApiClient:
    """HTTP client for the monitor service's read API and webhook."""

    def __init__(
        self,
        config: CLIConfig,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.http_timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def list_devices(self) -> List[Dict[str, Any]]:
        return self._get_json("/devices")

    def recent_readings(self, device_id: str, window_hours: int) -> List[Dict[str, Any]]:
        return self._get_json(
            f"/devices/{device_id}/readings", params={"window_hours": window_hours}
        )

    def export_csv(self, days: int) -> str:
        return self._get("/export", params={"days": days}).text

    def send_webhook(self, payload: Dict[str, Any]) -> httpx.Response:
        """Post a webhook payload and return the response whatever its status."""
        try:
            return self._client.post("/", json=payload)
        except httpx.HTTPError as exc:
            raise TransportError(f"Webhook request failed: {exc}") from exc

    def subscribe(
        self,
        callback: ReadingCallback,
        retry_delay: float = 5.0,
    ) -> EventSubscription:
        subscription = EventSubscription(
            self._config, callback, retry_delay=retry_delay, transport=self._transport
        )
        subscription.start()
        return subscription

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                f"Request to {path} failed with {_describe_http_error(exc.response)}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Request to {path} failed: {exc}") from exc
        return response

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = self._get(path, params=params)
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"Request to {path} returned a non-JSON body") from exc
