from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from app.dependencies import get_store
from datastore.readings import ReadingStore
from models.records import Device, TemperatureReading, temperature_band
from services.aggregator import Aggregator, HistorySummary
from services.errors import StorageError
from settings import get_settings


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))

REFRESH_SECONDS = 30
DOWNLOAD_WINDOWS = ((1, "Last 24 hours"), (7, "Last 7 days"), (30, "Last 30 days"), (90, "Last 3 months"))


@dataclass
class DeviceCard:
    device: Device
    latest: Optional[TemperatureReading]
    band: Optional[str]
    history: HistorySummary
    sparkline: str


router = APIRouter(include_in_schema=False)


@router.get("/ui", name="ui_dashboard", response_class=HTMLResponse)
async def ui_dashboard(
    request: Request,
    store: ReadingStore = Depends(get_store),
) -> HTMLResponse:
    aggregator = Aggregator()
    window_hours = get_settings().history_window_hours
    cards: list[DeviceCard] = []
    try:
        for device in store.list_active_devices():
            latest = store.latest_valid_reading(device.id)
            temperatures = [
                reading.temperature
                for reading in store.recent_valid_readings(device.id, window_hours)
            ]
            cards.append(
                DeviceCard(
                    device=device,
                    latest=latest,
                    band=temperature_band(latest.temperature) if latest else None,
                    history=aggregator.aggregate(temperatures),
                    sparkline=aggregator.sparkline(temperatures),
                )
            )
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc

    return templates.TemplateResponse(
        request,
        "ui/dashboard.html",
        {
            "cards": cards,
            "window_hours": window_hours,
            "refresh_seconds": REFRESH_SECONDS,
            "download_windows": DOWNLOAD_WINDOWS,
        },
    )
