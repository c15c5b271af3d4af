"""HTTP read API consumed by the dashboards."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response

from app.dependencies import get_store
from app.schemas import DeviceWithLatestReading, ReadingOut
from datastore.readings import ReadingStore
from services.errors import StorageError
from services.export import export_filename, export_readings
from settings import get_settings

router = APIRouter()


def _storage_failure(exc: StorageError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc),
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/devices",
    response_model=list[DeviceWithLatestReading],
    summary="Active devices ordered by name, each with its latest valid reading.",
)
async def list_devices(
    store: ReadingStore = Depends(get_store),
) -> list[DeviceWithLatestReading]:
    try:
        devices = store.list_active_devices()
        latest = {device.id: store.latest_valid_reading(device.id) for device in devices}
    except StorageError as exc:
        raise _storage_failure(exc) from exc

    summaries = []
    for device in devices:
        reading = latest[device.id]
        summary = DeviceWithLatestReading.model_validate(device)
        if reading is not None:
            summary.latest_reading = ReadingOut.model_validate(reading)
        summaries.append(summary)
    return summaries


@router.get(
    "/devices/{device_id}/latest",
    response_model=Optional[ReadingOut],
    summary="Most recent valid reading for a device, or null.",
)
async def latest_reading(
    device_id: str,
    store: ReadingStore = Depends(get_store),
) -> Optional[ReadingOut]:
    try:
        reading = store.latest_valid_reading(device_id)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return ReadingOut.model_validate(reading) if reading is not None else None


@router.get(
    "/devices/{device_id}/readings",
    response_model=list[ReadingOut],
    summary="Valid readings inside a trailing window, oldest first.",
)
async def recent_readings(
    device_id: str,
    window_hours: Optional[int] = Query(
        None,
        gt=0,
        le=24 * 365,
        description="Trailing window size; defaults to HISTORY_WINDOW_HOURS.",
    ),
    store: ReadingStore = Depends(get_store),
) -> list[ReadingOut]:
    hours = window_hours or get_settings().history_window_hours
    try:
        readings = store.recent_valid_readings(device_id, hours)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return [ReadingOut.model_validate(reading) for reading in readings]


@router.get(
    "/export",
    summary="Download valid readings for the trailing number of days as CSV.",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}},
)
async def export_csv(
    days: int = Query(7, gt=0, le=366),
    store: ReadingStore = Depends(get_store),
) -> Response:
    try:
        body = export_readings(store, days)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    filename = export_filename(days, datetime.now(timezone.utc).date())
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
