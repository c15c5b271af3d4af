"""Server-sent event stream announcing newly stored valid readings."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from app.dependencies import get_store
from app.schemas import ReadingOut
from datastore.change_feed import ChangeFeed
from datastore.readings import ReadingStore
from models.records import TemperatureReading
from settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


def format_reading_event(reading: TemperatureReading) -> str:
    payload = ReadingOut.model_validate(reading).model_dump_json()
    return f"event: reading\ndata: {payload}\n\n"


async def stream_reading_events(
    request: Request,
    feed: ChangeFeed,
    heartbeat_seconds: float,
) -> AsyncIterator[str]:
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[TemperatureReading] = asyncio.Queue()

    # Inserts are published from whichever thread ran the webhook.
    def enqueue(reading: TemperatureReading) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, reading)

    subscription = feed.subscribe(enqueue, predicate=lambda reading: reading.is_valid)
    logger.info("Event stream client connected")
    try:
        yield ": connected\n\n"
        while not await request.is_disconnected():
            try:
                reading = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield format_reading_event(reading)
    finally:
        subscription.close()
        logger.info("Event stream client disconnected")


@router.get(
    "/events",
    summary="Stream insert notifications for valid readings (text/event-stream).",
    response_class=StreamingResponse,
)
async def reading_events(
    request: Request,
    store: ReadingStore = Depends(get_store),
) -> StreamingResponse:
    heartbeat = get_settings().event_heartbeat_seconds
    return StreamingResponse(
        stream_reading_events(request, store.feed, heartbeat),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
