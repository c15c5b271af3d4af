"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

# Readings below this are sensor or link faults: stored, never displayed.
VALID_TEMPERATURE_FLOOR = -20.0


def is_valid_temperature(temperature: float) -> bool:
    return temperature >= VALID_TEMPERATURE_FLOOR


def temperature_band(temperature: float) -> str:
    """Coarse label used to colour a reading on the dashboards."""
    if temperature < 0:
        return "freezing"
    if temperature < 15:
        return "cool"
    if temperature < 25:
        return "comfortable"
    if temperature < 35:
        return "warm"
    return "hot"


@dataclass(slots=True)
class Device:
    """A registered field sensor identified by its Particle device id."""

    id: str
    particle_id: str
    name: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class TemperatureReading:
    """One timestamped temperature sample reported by a device."""

    id: str
    device_id: str
    particle_id: str
    temperature: float
    timestamp: datetime
    created_at: datetime

    @property
    def is_valid(self) -> bool:
        return is_valid_temperature(self.temperature)


@dataclass(slots=True)
class ExportRow:
    """A valid reading joined with the identity of its device."""

    device_name: str
    particle_id: str
    temperature: float
    timestamp: datetime
