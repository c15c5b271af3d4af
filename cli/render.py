from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

import typer

from cli.dashboard import DashboardPhase, DashboardView
from models.records import is_valid_temperature, temperature_band
from services.aggregator import Aggregator

_BAND_COLORS = {
    "freezing": typer.colors.BLUE,
    "cool": typer.colors.CYAN,
    "comfortable": typer.colors.GREEN,
    "warm": typer.colors.YELLOW,
    "hot": typer.colors.RED,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def describe_age(timestamp: datetime, now: datetime) -> str:
    minutes = int(max((now - timestamp).total_seconds(), 0) // 60)
    if minutes < 1:
        return "less than a minute ago"
    if minutes < 60:
        return f"{_plural(minutes, 'minute')} ago"
    hours = minutes // 60
    if hours < 24:
        return f"about {_plural(hours, 'hour')} ago"
    return f"{_plural(hours // 24, 'day')} ago"


def short_particle_id(particle_id: str) -> str:
    return f"{particle_id[:8]}..."


def render_device_card(device: Dict[str, Any], now: datetime) -> None:
    typer.secho(f"{device['name']}  ({short_particle_id(device['particle_id'])})", bold=True)
    reading = device.get("latest_reading")
    if not reading:
        typer.echo("  No readings available")
        return

    temperature = reading["temperature"]
    if not is_valid_temperature(temperature):
        typer.secho("  Invalid reading detected", fg=typer.colors.YELLOW)
        typer.echo(f"  Reading: {temperature}°C (filtered out)")
        return

    band = temperature_band(temperature)
    typer.secho(f"  {temperature:.1f}°C {band}", fg=_BAND_COLORS[band])
    age = describe_age(datetime.fromisoformat(reading["timestamp"]), now)
    typer.echo(f"  {age}")


def render_history(
    history: Iterable[Dict[str, Any]],
    history_hours: int,
    aggregator: Optional[Aggregator] = None,
) -> None:
    aggregator = aggregator or Aggregator()
    temperatures = [reading["temperature"] for reading in history]
    summary = aggregator.aggregate(temperatures)
    if not summary.row_count:
        typer.echo(f"  Last {history_hours}h: no readings")
        return
    typer.echo(
        f"  Last {history_hours}h: {_plural(summary.row_count, 'reading')}"
        f" · min {summary.min_value:.1f} · max {summary.max_value:.1f}"
        f" · mean {summary.mean_value:.1f}"
    )
    typer.echo(f"  {aggregator.sparkline(temperatures)}")


def render_dashboard(
    view: DashboardView,
    history_hours: int,
    now: Optional[datetime] = None,
) -> None:
    now = now or datetime.now(timezone.utc)
    echo_heading("Temperature Monitoring")

    if view.phase is DashboardPhase.loading:
        typer.echo("Loading temperature data...")
        return

    if view.phase is DashboardPhase.error:
        typer.secho("Error Loading Data", fg=typer.colors.RED, bold=True)
        typer.secho(view.error or "Failed to fetch temperature data", fg=typer.colors.RED)
        return

    if not view.devices:
        typer.echo()
        typer.echo("No Temperature Devices")
        typer.echo(
            "No active temperature monitoring devices found. Make sure your Particle "
            "devices are connected and publishing temperature data."
        )
        return

    aggregator = Aggregator()
    for device in view.devices:
        typer.echo()
        render_device_card(device, now)
        render_history(view.history.get(device["id"], []), history_hours, aggregator)

    if view.refreshed_at is not None:
        typer.echo()
        typer.echo(f"Updated {view.refreshed_at.isoformat(timespec='seconds')}")


def render_webhook_response(status_code: int, payload: Dict[str, Any]) -> None:
    echo_heading("Webhook Response")
    echo_key_values([("status", status_code)])
    echo_key_values(sorted(payload.items()))
