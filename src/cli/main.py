"""devlink command line.

Commands delegate to `core.services.provisioning`; this module only wires
configuration, adapters, logging and rendering.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from adapters.broadcast import UdpBroadcaster
from adapters.cloud import build_cloud_client
from adapters.json_exporter import export_devices_json
from cli.doctor import app as doctor_app
from cli.ui_components import build_devices_table, describe_page, print_banner
from core.config import AppSettings
from core.domain.models import DevicePage, DeviceRecord, SessionRef
from core.errors import DevlinkError
from core.services.provisioning import ProvisioningOrchestrator

app = typer.Typer(no_args_is_help=True, help="Provision headless devices onto WiFi and bind them to a cloud account.")
app.add_typer(doctor_app, name="doctor")

_console = Console()
_err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=_err_console, show_path=False, rich_tracebacks=False)],
        force=True,
    )


def build_orchestrator(settings: AppSettings) -> ProvisioningOrchestrator:
    credentials = settings.credentials()
    broadcaster = UdpBroadcaster(
        address=settings.broadcast_address,
        port=settings.broadcast_port,
        interval_seconds=settings.broadcast_interval_seconds,
    )
    return ProvisioningOrchestrator(
        credentials,
        cloud=build_cloud_client(settings, credentials),
        broadcaster=broadcaster,
        poll_interval=settings.poll_interval_seconds,
        default_timeout_seconds=settings.effective_link_timeout(),
    )


def _fail(exc: DevlinkError) -> typer.Exit:
    _err_console.print(f"[red]Error:[/red] {escape(str(exc))}")
    for note in getattr(exc, "__notes__", []):
        _err_console.print(f"[yellow]Note:[/yellow] {escape(str(note))}")
    return typer.Exit(code=1)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress (DEBUG with -v, else the configured level)."),
) -> None:
    settings = AppSettings()
    configure_logging("DEBUG" if verbose else settings.log_level)


async def _login(settings: AppSettings) -> SessionRef:
    async with build_orchestrator(settings) as orchestrator:
        return await orchestrator.init()


async def _link(
    settings: AppSettings,
    *,
    ssid: str,
    wifi_password: str,
    devices: int,
    timeout: float | None,
) -> list[DeviceRecord]:
    async with build_orchestrator(settings) as orchestrator:
        await orchestrator.init()
        return await orchestrator.link_device(
            ssid,
            wifi_password,
            device_count=devices,
            timeout_seconds=timeout,
        )


async def _list(settings: AppSettings, *, ids: list[str] | None, page: int, page_size: int) -> DevicePage:
    async with build_orchestrator(settings) as orchestrator:
        await orchestrator.init()
        return await orchestrator.get_linked_devices(ids, page, page_size)


@app.command()
def login() -> None:
    """Log in (registering the account if needed) and show the account uid."""

    settings = AppSettings()
    try:
        session = asyncio.run(_login(settings))
    except DevlinkError as exc:
        raise _fail(exc) from exc
    _console.print(f"[green]Logged in[/green] ({session.backend}) uid={session.uid}")


@app.command()
def link(
    ssid: str = typer.Option(..., "--ssid", help="WiFi network the device should join."),
    wifi_password: str = typer.Option("", "--wifi-password", help="Password of the WiFi network."),
    devices: int = typer.Option(1, "--devices", "-n", min=1, help="Number of devices being linked at once."),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=1, help="Seconds to wait for devices."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write linked devices as JSON."),
    no_banner: bool = typer.Option(False, "--no-banner", help="Skip the banner."),
) -> None:
    """Broadcast WiFi credentials and wait for devices to register with the cloud."""

    settings = AppSettings()
    if not no_banner:
        print_banner(_console)
    try:
        with _console.status("Waiting for devices to connect..."):
            linked = asyncio.run(
                _link(settings, ssid=ssid, wifi_password=wifi_password, devices=devices, timeout=timeout)
            )
    except DevlinkError as exc:
        raise _fail(exc) from exc

    _console.print(build_devices_table(linked, title="Linked devices"))
    if output:
        path = export_devices_json(devices=linked, output_path=output)
        _console.print(f"[green]Saved:[/green] {path}")


@app.command(name="devices")
def list_devices(
    ids: Optional[list[str]] = typer.Option(None, "--id", help="Only these device ids (repeatable)."),
    page: int = typer.Option(0, "--page", min=0),
    page_size: int = typer.Option(100, "--page-size", min=1, max=500),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the page as JSON."),
) -> None:
    """List devices already bound to the account."""

    settings = AppSettings()
    try:
        result = asyncio.run(_list(settings, ids=ids or None, page=page, page_size=page_size))
    except DevlinkError as exc:
        raise _fail(exc) from exc

    _console.print(build_devices_table(result.devices))
    _console.print(describe_page(result))
    if output:
        path = export_devices_json(devices=result.devices, output_path=output)
        _console.print(f"[green]Saved:[/green] {path}")


def run() -> None:
    app()
