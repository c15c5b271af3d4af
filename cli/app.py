from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient, TransportError
from cli.config import CLIConfig, load_config
from cli.dashboard import DOWNLOAD_WINDOWS, DashboardClient, DashboardPhase, DashboardView, DownloadError
from cli.render import echo_key_values, render_dashboard, render_webhook_response
from datastore.readings import build_default_store
from services.errors import DeviceNotFoundError, StorageError


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Dashboard and operator utilities for the Particle temperature monitor.",
    context_settings={"help_option_names": ["-h", "--help"]},
)
devices_app = typer.Typer(help="Provision devices and toggle their activation.")
app.add_typer(devices_app, name="devices")


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.find_root().obj
    if not isinstance(state, CLIState):
        _fail("CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Monitor API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between fallback refreshes in watch mode.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        http_timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("dashboard")
def dashboard_command(
    ctx: typer.Context,
    hours: Optional[int] = typer.Option(
        None,
        "--hours",
        min=1,
        help="History window per device (defaults to DASHBOARD_HISTORY_HOURS or 48).",
    ),
    watch: bool = typer.Option(
        False,
        "--watch/--no-watch",
        help="Keep running and redraw whenever new readings arrive; Enter refreshes, q quits.",
    ),
) -> None:
    """Show current readings and recent history for every active device."""
    state = _get_state(ctx)
    history_hours = hours or state.config.history_hours

    if not watch:
        dashboard = DashboardClient(state.client, history_hours=history_hours)
        view = dashboard.refresh()
        render_dashboard(view, history_hours)
        if view.phase is DashboardPhase.error:
            raise typer.Exit(code=1)
        return

    draw_lock = threading.Lock()

    def redraw(view: DashboardView) -> None:
        with draw_lock:
            typer.clear()
            render_dashboard(view, history_hours)
            typer.echo()
            typer.echo("Press Enter to refresh, or type q and Enter to quit.")

    dashboard = DashboardClient(
        state.client,
        poll_interval=state.config.poll_interval,
        history_hours=history_hours,
        on_update=redraw,
    )
    dashboard.start()
    stdin = typer.get_text_stream("stdin")
    try:
        while True:
            line = stdin.readline()
            if not line:
                # No interactive input; rely on polling and push until interrupted.
                threading.Event().wait()
            if line.strip().lower() == "q":
                break
            dashboard.retry()
    except KeyboardInterrupt:
        typer.echo()
    finally:
        dashboard.stop()


@app.command("download")
def download_command(
    ctx: typer.Context,
    days: int = typer.Option(7, "--days", "-d", help="Trailing window: 1, 7, 30 or 90 days."),
    output_dir: Path = typer.Option(
        Path("."),
        "--output-dir",
        "-o",
        file_okay=False,
        help="Directory the CSV file is written to.",
    ),
) -> None:
    """Save valid readings for a trailing window as a CSV file."""
    if days not in DOWNLOAD_WINDOWS:
        raise typer.BadParameter(
            f"must be one of {', '.join(str(window) for window in DOWNLOAD_WINDOWS)}",
            param_hint="--days",
        )
    state = _get_state(ctx)
    dashboard = DashboardClient(state.client)
    try:
        path = dashboard.download(days, output_dir)
    except DownloadError as exc:
        _fail(str(exc))
    typer.secho(f"Saved {path}", fg=typer.colors.GREEN)


@app.command("send-test")
def send_test_command(
    ctx: typer.Context,
    coreid: str = typer.Argument(..., help="Particle device id to report as."),
    data: str = typer.Option("23.5", "--data", help="Event data, a number or a JSON object."),
    event: str = typer.Option("temp", "--event", help="Particle event name."),
) -> None:
    """Post a sample webhook payload, as Particle Cloud would."""
    state = _get_state(ctx)
    payload = {
        "event": event,
        "data": data,
        "published_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "coreid": coreid,
    }
    echo_key_values(sorted(payload.items()))
    typer.echo()
    try:
        response = state.client.send_webhook(payload)
    except TransportError as exc:
        _fail(str(exc))
    try:
        body = response.json()
    except ValueError:
        body = {"body": response.text}
    render_webhook_response(response.status_code, body)
    if response.status_code >= 400:
        raise typer.Exit(code=1)


@devices_app.command("add")
def add_device_command(
    particle_id: str = typer.Argument(..., help="Particle device id (coreid)."),
    name: str = typer.Argument(..., help="Display name."),
    inactive: bool = typer.Option(False, "--inactive", help="Register without accepting readings."),
) -> None:
    """Register a device in the configured database."""
    try:
        device = build_default_store().add_device(particle_id, name, is_active=not inactive)
    except StorageError as exc:
        _fail(str(exc))
    typer.secho(f"Registered {device.name} ({device.particle_id}) id={device.id}", fg=typer.colors.GREEN)


def _toggle(particle_id: str, active: bool) -> None:
    try:
        device = build_default_store().set_device_active(particle_id, active)
    except (DeviceNotFoundError, StorageError) as exc:
        _fail(str(exc))
    state = "active" if device.is_active else "inactive"
    typer.secho(f"{device.name} ({device.particle_id}) is now {state}", fg=typer.colors.GREEN)


@devices_app.command("activate")
def activate_device_command(
    particle_id: str = typer.Argument(..., help="Particle device id (coreid)."),
) -> None:
    """Accept readings from a device again."""
    _toggle(particle_id, True)


@devices_app.command("deactivate")
def deactivate_device_command(
    particle_id: str = typer.Argument(..., help="Particle device id (coreid)."),
) -> None:
    """Stop accepting readings from a device and hide it from the dashboards."""
    _toggle(particle_id, False)


@devices_app.command("list")
def list_devices_command() -> None:
    """List every registered device, active or not."""
    try:
        devices = build_default_store().list_devices()
    except StorageError as exc:
        _fail(str(exc))
    if not devices:
        typer.echo("No devices registered.")
        return
    for device in devices:
        state = "active" if device.is_active else "inactive"
        typer.echo(f"{device.particle_id}  {device.name}  [{state}]")
