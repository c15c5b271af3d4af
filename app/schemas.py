"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class WebhookPayload(BaseModel):
    """Body Particle Cloud posts for every published device event.

    Only ``coreid``, ``data`` and ``published_at`` are read. Vendor fields such
    as ``event``, ``version`` or ``productID`` pass through untyped as extras,
    whatever their shape.
    """

    model_config = ConfigDict(extra="allow")

    coreid: Optional[str] = None
    data: Optional[str] = None
    published_at: Optional[str] = None


class WebhookAccepted(BaseModel):
    """Response body for a stored reading."""

    success: bool = True
    message: str = "Temperature reading stored successfully"
    device: str = Field(..., description="Display name of the reporting device.")
    temperature: float
    timestamp: str = Field(..., description="The published_at value as received.")


class ErrorResponse(BaseModel):
    error: str


class DeviceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    particle_id: str
    name: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ReadingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    device_id: str
    particle_id: str
    temperature: float
    timestamp: datetime
    created_at: datetime


class DeviceWithLatestReading(DeviceOut):
    """An active device together with its most recent valid reading."""

    latest_reading: Optional[ReadingOut] = None
