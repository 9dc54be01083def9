from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from devlink.cli.common import find_device_or_exit, run_session
from devlink.core import ConnectState, Session
from devlink.errors import ConnectionInProgressError, DeviceValidationError
from devlink.models import DEFAULT_PORT, DEFAULT_REPLICATION_FOLDER, DEFAULT_USERNAME
from devlink.utils.redaction import Redactor


def list_devices(
    redact: bool = typer.Option(
        False,
        "--redact",
        help="Redact sensitive values in output",
    ),
) -> None:
    """List known devices and the state of their machines."""
    console = Console()

    async def _collect(session: Session) -> list[tuple[str, ...]]:
        redactor = Redactor(enabled=redact)
        rows = []
        for device in session.store:
            machine = session.store.machine_for(device.name)
            rows.append(
                (
                    device.name,
                    redactor.redact_host(device.host),
                    device.port,
                    device.username,
                    machine.status.value if machine else "",
                    "yes" if device.is_connected else "no",
                )
            )
        return rows

    rows = run_session(_collect, console)
    if not rows:
        console.print("No devices defined.")
        console.print("Use 'devlink add' to register one.")
        return

    table = Table()
    table.add_column("Name", style="cyan")
    table.add_column("Host", style="green")
    table.add_column("Port")
    table.add_column("User")
    table.add_column("Machine", style="yellow")
    table.add_column("Connected")
    for row in rows:
        table.add_row(*row)
    console.print(table)


def add(
    name: str = typer.Argument(..., help="Unique device name"),
    host: str = typer.Option(..., "--host", "-H", help="Device hostname or IP address"),
    port: str = typer.Option(DEFAULT_PORT, "--port", "-p", help="SSH port"),
    username: str = typer.Option(DEFAULT_USERNAME, "--username", "-u", help="Login user"),
    password: str = typer.Option("", "--password", help="Login password"),
    folder: str = typer.Option(
        DEFAULT_REPLICATION_FOLDER, "--folder", help="Remote folder for project files"
    ),
) -> None:
    """Register a device and connect to it."""
    console = Console()

    async def _add(session: Session) -> ConnectState:
        store = session.store
        device = store.new_device()
        fields = {
            "name": name,
            "host": host,
            "port": port,
            "username": username,
            "password": password,
            "replication_folder": folder,
        }
        for field_name, value in fields.items():
            store.apply_field(device, field_name, value)

        try:
            await session.orchestrator.save(device)
        except DeviceValidationError as exc:
            store.revert(device)
            console.print(f"[red]Error:[/red] {exc.message}")
            raise typer.Exit(1) from None
        return await session.orchestrator.wait_for_connection()

    state = run_session(_add, console)
    if state is not ConnectState.CONNECTED:
        raise typer.Exit(1)


def connect(
    name: str = typer.Argument(..., help="Device name"),
) -> None:
    """Connect to a known device."""
    console = Console()

    async def _connect(session: Session) -> bool:
        device = find_device_or_exit(session, name, console)
        if device.is_connected:
            console.print(f"[dim]Already connected:[/dim] {name}")
            return True
        try:
            await session.orchestrator.save(device)
        except (ConnectionInProgressError, DeviceValidationError) as exc:
            console.print(f"[red]Error:[/red] {exc.message}")
            return False
        await session.orchestrator.wait_for_connection()
        refreshed = session.store.find_by_name(name)
        return refreshed is not None and refreshed.is_connected

    if not run_session(_connect, console):
        raise typer.Exit(1)


def disconnect(
    name: str = typer.Argument(..., help="Device name"),
) -> None:
    """Disconnect from a device, keeping its machine record."""
    console = Console()

    async def _disconnect(session: Session) -> None:
        device = find_device_or_exit(session, name, console)
        if not device.is_connected:
            console.print(f"[dim]Not connected:[/dim] {name}")
            return
        await session.orchestrator.disconnect(device)

    run_session(_disconnect, console)


def delete(
    name: str = typer.Argument(..., help="Device name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a device and destroy its machine."""
    console = Console()

    async def _delete(session: Session) -> bool:
        device = find_device_or_exit(session, name, console)
        return await session.orchestrator.delete_device(device)

    if not run_session(_delete, console, assume_yes=yes):
        raise typer.Exit(1)


def register(app: typer.Typer) -> None:
    app.command("devices")(list_devices)
    app.command()(add)
    app.command()(connect)
    app.command()(disconnect)
    app.command()(delete)
