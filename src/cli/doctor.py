"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio
import socket

import typer
from rich.console import Console
from rich.table import Table

from adapters.http_client import build_async_client
from core.config import AppSettings, CloudBackend, write_user_env_vars
from core.domain.region import Region

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_http(url: str, settings: AppSettings) -> tuple[bool, str]:
    try:
        async with build_async_client(settings) as client:
            response = await client.get(url)
        return True, f"HTTP {response.status_code}"
    except Exception as exc:
        return False, str(exc)


def _check_broadcast_socket() -> tuple[bool, str]:
    """Bind a broadcast-capable UDP socket the way the broadcaster does."""

    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind(("", 0))
            port = sock.getsockname()[1]
        return True, f"bound ephemeral port {port}"
    except OSError as exc:
        return False, str(exc)


@app.command()
def run() -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()

    table = Table(title="devlink doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    account_ok = bool(settings.email and settings.password)
    table.add_row("Account", "OK" if account_ok else "MISSING", settings.email or "set DEVLINK_EMAIL / DEVLINK_PASSWORD")
    api_ok = bool(settings.api_key and settings.api_secret)
    table.add_row("API key/secret", "OK" if api_ok else "MISSING", "DEVLINK_API_KEY / DEVLINK_API_SECRET")
    table.add_row("Backend", "OK", settings.backend.value)
    if settings.backend is CloudBackend.OPENAPI:
        schema_ok = bool(settings.schema_name)
        table.add_row("App schema", "OK" if schema_ok else "MISSING", settings.schema_name or "set DEVLINK_SCHEMA_NAME")
    table.add_row("Region", "OK", f"{settings.region.value} ({settings.region.label()})")
    table.add_row("Link timeout", "OK", f"{settings.effective_link_timeout():g}s")

    # Connectivity (best-effort)
    host = (
        settings.region.openapi_host()
        if settings.backend is CloudBackend.OPENAPI
        else settings.region.mobile_host()
    )
    ok_http, detail_http = asyncio.run(_check_http(host, settings))
    table.add_row("Cloud connectivity", "OK" if ok_http else "FAIL", detail_http)

    ok_udp, detail_udp = _check_broadcast_socket()
    table.add_row("UDP broadcast", "OK" if ok_udp else "FAIL", detail_udp)

    _console.print(table)

    if not ok_udp:
        _console.print(
            "\n[yellow]Note:[/yellow] Broadcasting needs a network interface that allows SO_BROADCAST."
        )


@app.command(name="setup")
def setup() -> None:
    """Interactive setup (stores config in the user config .env)."""

    backend = typer.prompt("Cloud backend (openapi/mobile)", default="openapi", show_default=True).strip().lower()
    try:
        backend = CloudBackend(backend).value
    except ValueError as exc:
        raise typer.BadParameter("backend must be 'openapi' or 'mobile'") from exc

    region = typer.prompt("Region (AZ/AY/EU/IN)", default=Region.default().value, show_default=True).strip().upper()
    try:
        region = Region(region).value
    except ValueError as exc:
        raise typer.BadParameter("unknown region") from exc

    api_key = typer.prompt("API key").strip()
    api_secret = typer.prompt("API secret", hide_input=True).strip()
    email = typer.prompt("Account email").strip()
    password = typer.prompt("Account password", hide_input=True).strip()
    schema = ""
    if backend == CloudBackend.OPENAPI.value:
        schema = typer.prompt("App schema").strip()

    if not api_key or not api_secret or not email or not password:
        raise typer.BadParameter("api key, api secret, email and password are required")

    env_path = write_user_env_vars(
        {
            "DEVLINK_BACKEND": backend,
            "DEVLINK_REGION": region,
            "DEVLINK_API_KEY": api_key,
            "DEVLINK_API_SECRET": api_secret,
            "DEVLINK_EMAIL": email,
            "DEVLINK_PASSWORD": password,
            "DEVLINK_SCHEMA_NAME": schema or None,
        }
    )

    _console.print(f"[green]Saved config to:[/green] {env_path}")
