"""CLI UI components (Rich).

Why separate components:
- Keeps command logic apart from presentation details.
- Lets several commands reuse the same tables/panels.
"""

from __future__ import annotations

from typing import Iterable

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import DevicePage, DeviceRecord


def print_banner(console: Console) -> None:
    """Print the welcome banner.

    Why here:
    - Avoids circular imports (main <-> doctor).
    - Lets non-interactive modes (JSON output) skip it.
    """

    title = Text("devlink", style="bold cyan")
    subtitle = Text("WiFi provisioning • Cloud pairing", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def build_devices_table(devices: Iterable[DeviceRecord], *, title: str = "Devices") -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Product", style="magenta")
    table.add_column("IP", style="green")
    table.add_column("Online", style="yellow")
    for device in devices:
        online = "" if device.online is None else ("yes" if device.online else "no")
        table.add_row(device.id, device.name or "", device.product_id or "", device.ip or "", online)
    return table


def describe_page(page: DevicePage) -> Text:
    total = "?" if page.total is None else str(page.total)
    text = Text(f"Page {page.page_number} · {len(page.devices)} shown · {total} total", style="dim")
    if page.has_more:
        text.append(f" · more with --page {page.page_number + 1}", style="dim")
    return text
