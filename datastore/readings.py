from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Iterator, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from datastore.change_feed import ChangeFeed
from datastore.database import create_store_engine
from datastore.tables import Base, DeviceRow, ReadingRow
from models.records import VALID_TEMPERATURE_FLOOR, Device, ExportRow, TemperatureReading
from services.errors import DeviceNotFoundError, StorageError
from settings import get_settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_device(row: DeviceRow) -> Device:
    return Device(
        id=row.id,
        particle_id=row.particle_id,
        name=row.name,
        is_active=row.is_active,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_reading(row: ReadingRow) -> TemperatureReading:
    return TemperatureReading(
        id=row.id,
        device_id=row.device_id,
        particle_id=row.particle_id,
        temperature=row.temperature,
        timestamp=row.timestamp,
        created_at=row.created_at,
    )


class ReadingStore:
    """Relational store of devices and their temperature readings.

    Every read query excludes readings below ``VALID_TEMPERATURE_FLOOR``;
    such readings are still written by :meth:`insert_reading`. Inserted
    readings are published on :attr:`feed` once committed.
    """

    def __init__(
        self,
        engine: Engine,
        feed: Optional[ChangeFeed] = None,
        history_row_limit: int = 1000,
    ) -> None:
        self.engine = engine
        self.feed = feed or ChangeFeed()
        self.history_row_limit = history_row_limit
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Reading store failed to %s", action)
            raise StorageError(f"Failed to {action}.") from exc
        finally:
            session.close()

    # Devices

    def add_device(self, particle_id: str, name: str, is_active: bool = True) -> Device:
        now = _utcnow()
        with self._session("register device") as session:
            row = DeviceRow(
                id=str(uuid4()),
                particle_id=particle_id,
                name=name,
                is_active=is_active,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            return _to_device(row)

    def set_device_active(self, particle_id: str, active: bool) -> Device:
        with self._session("update device") as session:
            row = session.scalars(
                select(DeviceRow).where(DeviceRow.particle_id == particle_id)
            ).first()
            if row is None:
                raise DeviceNotFoundError(particle_id)
            row.is_active = active
            row.updated_at = _utcnow()
            session.commit()
            return _to_device(row)

    def find_active_device(self, particle_id: str) -> Optional[Device]:
        with self._session("look up device") as session:
            row = session.scalars(
                select(DeviceRow).where(
                    DeviceRow.particle_id == particle_id,
                    DeviceRow.is_active.is_(True),
                )
            ).first()
            return _to_device(row) if row is not None else None

    def list_devices(self) -> list[Device]:
        with self._session("list devices") as session:
            rows = session.scalars(select(DeviceRow).order_by(DeviceRow.name)).all()
            return [_to_device(row) for row in rows]

    def list_active_devices(self) -> list[Device]:
        with self._session("list active devices") as session:
            rows = session.scalars(
                select(DeviceRow)
                .where(DeviceRow.is_active.is_(True))
                .order_by(DeviceRow.name)
            ).all()
            return [_to_device(row) for row in rows]

    # Readings

    def insert_reading(
        self,
        device: Device,
        temperature: float,
        timestamp: datetime,
    ) -> TemperatureReading:
        with self._session("store temperature reading") as session:
            row = ReadingRow(
                id=str(uuid4()),
                device_id=device.id,
                particle_id=device.particle_id,
                temperature=temperature,
                timestamp=_as_utc(timestamp),
                created_at=_utcnow(),
            )
            session.add(row)
            session.commit()
            reading = _to_reading(row)

        self.feed.publish(reading)
        return reading

    def latest_valid_reading(self, device_id: str) -> Optional[TemperatureReading]:
        with self._session("fetch latest reading") as session:
            row = session.scalars(
                select(ReadingRow)
                .where(
                    ReadingRow.device_id == device_id,
                    ReadingRow.temperature >= VALID_TEMPERATURE_FLOOR,
                )
                .order_by(ReadingRow.timestamp.desc())
                .limit(1)
            ).first()
            return _to_reading(row) if row is not None else None

    def recent_valid_readings(
        self,
        device_id: str,
        window_hours: float,
        *,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[TemperatureReading]:
        """Valid readings inside the trailing window, oldest first.

        The newest ``limit`` rows win when the window holds more than the cap.
        """
        cutoff = _as_utc(now or _utcnow()) - timedelta(hours=window_hours)
        with self._session("fetch reading history") as session:
            rows = session.scalars(
                select(ReadingRow)
                .where(
                    ReadingRow.device_id == device_id,
                    ReadingRow.temperature >= VALID_TEMPERATURE_FLOOR,
                    ReadingRow.timestamp >= cutoff,
                )
                .order_by(ReadingRow.timestamp.desc())
                .limit(limit or self.history_row_limit)
            ).all()
            return [_to_reading(row) for row in reversed(rows)]

    def valid_readings_since(
        self,
        days: int,
        *,
        now: Optional[datetime] = None,
    ) -> list[ExportRow]:
        cutoff = _as_utc(now or _utcnow()) - timedelta(days=days)
        with self._session("fetch readings for export") as session:
            rows = session.execute(
                select(
                    DeviceRow.name,
                    DeviceRow.particle_id,
                    ReadingRow.temperature,
                    ReadingRow.timestamp,
                )
                .join(DeviceRow, ReadingRow.device_id == DeviceRow.id)
                .where(
                    ReadingRow.temperature >= VALID_TEMPERATURE_FLOOR,
                    ReadingRow.timestamp >= cutoff,
                )
                .order_by(ReadingRow.timestamp.desc())
            ).all()
            return [
                ExportRow(
                    device_name=name,
                    particle_id=particle_id,
                    temperature=temperature,
                    timestamp=timestamp,
                )
                for name, particle_id, temperature, timestamp in rows
            ]


@lru_cache
def build_default_store(database_url: Optional[str] = None) -> ReadingStore:
    """Factory that wires a store against the configured database."""
    settings = get_settings()
    engine = create_store_engine(database_url or settings.database_url)
    store = ReadingStore(engine=engine, history_row_limit=settings.history_row_limit)
    store.create_schema()
    return store
