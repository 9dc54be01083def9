from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.table import Table

from devlink.cli.common import load_settings_or_exit
from devlink.core import ZeroconfDiscovery
from devlink.utils.redaction import Redactor

logger = logging.getLogger(__name__)


def discover(
    redact: bool = typer.Option(
        False,
        "--redact",
        help="Redact sensitive values in output",
    ),
) -> None:
    """Discover SSH-capable devices on the local network via mDNS."""
    console = Console()
    settings = load_settings_or_exit()

    console.print("Discovering devices via mDNS...")
    logger.info(
        "mDNS discovery settings: service=%s, timeout=%.2fs",
        settings.discovery.service_type,
        settings.discovery.timeout,
    )
    devices = asyncio.run(ZeroconfDiscovery(settings.discovery).get_devices())

    if not devices:
        console.print("No devices found.")
        return

    redactor = Redactor(enabled=redact)
    table = Table()
    table.add_column("IP", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Port")
    for device in devices:
        table.add_row(
            redactor.redact_host(device.ip_address), device.name, str(device.port)
        )

    console.print(table)
    console.print(f"\n[green]Found {len(devices)} device(s)[/green]")
    console.print("Use 'devlink add NAME --host IP' to register one.")


def register(app: typer.Typer) -> None:
    app.command()(discover)
