"""CSV export of valid readings over a trailing window of days."""

from __future__ import annotations

import csv
import io
import logging
from datetime import date, datetime
from typing import Iterable, Optional

from datastore.readings import ReadingStore
from models.records import ExportRow

logger = logging.getLogger(__name__)

CSV_HEADERS = ("Device Name", "Particle ID", "Temperature (°C)", "Timestamp")


def export_filename(days: int, today: date) -> str:
    return f"temperature-data-{days}days-{today.isoformat()}.csv"


def format_temperature(value: float) -> str:
    # Whole degrees print without a trailing ".0".
    if value.is_integer():
        return str(int(value))
    return repr(value)


def render_csv(rows: Iterable[ExportRow]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for row in rows:
        writer.writerow(
            [
                row.device_name,
                row.particle_id,
                format_temperature(row.temperature),
                row.timestamp.isoformat(),
            ]
        )
    return buffer.getvalue()


def export_readings(
    store: ReadingStore,
    days: int,
    now: Optional[datetime] = None,
) -> str:
    """Serialize every valid reading from the last ``days`` days, newest first."""
    rows = store.valid_readings_since(days, now=now)
    logger.info("Exporting readings", extra={"days": days, "row_count": len(rows)})
    return render_csv(rows)
