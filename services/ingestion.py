"""Webhook ingestion: payload parsing, validation and reading persistence."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Union

from app.schemas import WebhookPayload
from datastore.readings import ReadingStore
from services.errors import DeviceNotFoundError, PayloadValidationError

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("coreid", "data", "published_at")


@dataclass(frozen=True, slots=True)
class StructuredData:
    """``data`` decoded to a JSON object."""

    fields: Dict[str, Any]


@dataclass(frozen=True, slots=True)
class NumericData:
    """``data`` is a bare floating-point literal."""

    value: float


@dataclass(frozen=True, slots=True)
class MalformedData:
    """``data`` is neither a JSON object nor a number."""

    raw: str


ParsedData = Union[StructuredData, NumericData, MalformedData]


def parse_data(raw: str) -> ParsedData:
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        decoded = None
    if isinstance(decoded, dict):
        return StructuredData(fields=decoded)

    try:
        return NumericData(value=float(raw.strip()))
    except ValueError:
        return MalformedData(raw=raw)


def resolve_temperature(parsed: ParsedData) -> float:
    """Pick the temperature out of parsed event data.

    Objects carry it under ``temp``; ``temperature`` is read when ``temp`` is
    absent for devices still on older firmware.
    """
    if isinstance(parsed, MalformedData):
        raise PayloadValidationError("Invalid temperature data format")

    if isinstance(parsed, StructuredData):
        value = parsed.fields.get("temp")
        if value is None:
            value = parsed.fields.get("temperature")
    else:
        value = parsed.value

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PayloadValidationError("Invalid temperature value")
    if not math.isfinite(value):
        raise PayloadValidationError("Invalid temperature value")
    return float(value)


def parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class IngestionResult:
    reading_id: str
    device_name: str
    temperature: float
    published_at: str


class IngestionService:
    """Turns one webhook call into at most one stored reading."""

    def __init__(self, store: ReadingStore) -> None:
        self.store = store

    def ingest(self, payload: WebhookPayload) -> IngestionResult:
        missing = [name for name in _REQUIRED_FIELDS if not getattr(payload, name)]
        if missing:
            logger.warning(
                "Rejecting webhook with missing fields",
                extra={"coreid": payload.coreid, "reason": ",".join(missing)},
            )
            raise PayloadValidationError(
                "Missing required fields: coreid, data, or published_at"
            )

        assert payload.coreid and payload.data and payload.published_at

        try:
            temperature = resolve_temperature(parse_data(payload.data))
        except PayloadValidationError as exc:
            logger.warning(
                "Rejecting webhook with unusable data %r",
                payload.data,
                extra={"coreid": payload.coreid, "reason": str(exc)},
            )
            raise

        try:
            timestamp = parse_timestamp(payload.published_at)
        except ValueError as exc:
            logger.warning(
                "Rejecting webhook with bad published_at %r",
                payload.published_at,
                extra={"coreid": payload.coreid, "reason": str(exc)},
            )
            raise PayloadValidationError("Invalid published_at timestamp") from exc

        device = self.store.find_active_device(payload.coreid)
        if device is None:
            logger.warning(
                "Rejecting webhook from unknown or inactive device",
                extra={"coreid": payload.coreid, "reason": "device not found"},
            )
            raise DeviceNotFoundError(payload.coreid)

        reading = self.store.insert_reading(device, temperature, timestamp)
        logger.info(
            "Stored temperature reading from %s",
            device.name,
            extra={
                "coreid": payload.coreid,
                "device_id": device.id,
                "temperature": temperature,
            },
        )
        return IngestionResult(
            reading_id=reading.id,
            device_name=device.name,
            temperature=temperature,
            published_at=payload.published_at,
        )
