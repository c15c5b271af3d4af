from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

from app.events import format_reading_event, stream_reading_events
from datastore.change_feed import ChangeFeed
from models.records import TemperatureReading


class _ConnectedRequest:
    def __init__(self) -> None:
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


def _reading(temperature: float) -> TemperatureReading:
    stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return TemperatureReading(
        id=f"reading-{temperature}",
        device_id="device-1",
        particle_id="abc123",
        temperature=temperature,
        timestamp=stamp,
        created_at=stamp,
    )


def test_format_reading_event_is_sse_message() -> None:
    message = format_reading_event(_reading(21.5))

    lines = message.split("\n")
    assert lines[0] == "event: reading"
    assert lines[1].startswith("data: ")
    assert message.endswith("\n\n")
    payload = json.loads(lines[1][len("data: "):])
    assert payload["temperature"] == 21.5
    assert payload["device_id"] == "device-1"


def test_stream_emits_only_valid_readings_and_unsubscribes() -> None:
    feed = ChangeFeed()
    request = _ConnectedRequest()

    async def scenario() -> list[str]:
        stream = stream_reading_events(request, feed, heartbeat_seconds=5.0)
        chunks = [await stream.__anext__()]
        feed.publish(_reading(-30.0))
        feed.publish(_reading(22.0))
        chunks.append(await stream.__anext__())
        await stream.aclose()
        return chunks

    chunks = asyncio.run(scenario())

    assert chunks[0] == ": connected\n\n"
    assert chunks[1].startswith("event: reading\n")
    assert '"temperature":22.0' in chunks[1]
    assert feed.subscriber_count == 0


def test_stream_sends_keepalive_when_idle() -> None:
    feed = ChangeFeed()
    request = _ConnectedRequest()

    async def scenario() -> str:
        stream = stream_reading_events(request, feed, heartbeat_seconds=0.01)
        await stream.__anext__()
        chunk = await stream.__anext__()
        await stream.aclose()
        return chunk

    assert asyncio.run(scenario()) == ": keepalive\n\n"


def test_stream_stops_when_client_disconnects() -> None:
    feed = ChangeFeed()
    request = _ConnectedRequest()

    async def scenario() -> list[str]:
        chunks = []
        async for chunk in stream_reading_events(request, feed, heartbeat_seconds=5.0):
            chunks.append(chunk)
            request.disconnected = True
        return chunks

    assert asyncio.run(scenario()) == [": connected\n\n"]
    assert feed.subscriber_count == 0
