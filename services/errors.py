"""Error taxonomy shared by the ingestion and data access layers."""

from __future__ import annotations


class PayloadValidationError(ValueError):
    """The webhook payload is missing fields or carries an unusable temperature."""


class DeviceNotFoundError(LookupError):
    """No active device is registered under the given Particle id."""

    def __init__(self, particle_id: str) -> None:
        super().__init__(f"Device {particle_id!r} not found or inactive.")
        self.particle_id = particle_id


class StorageError(RuntimeError):
    """The reading store failed to execute a query or an insert."""
