from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from devlink.cli.common import run_session
from devlink.core import Session


def actions(
    file_path: str | None = typer.Argument(
        None,
        help="Binary path relative to the replication folder; shows resolved commands",
    ),
) -> None:
    """List run and debug actions for running devices."""
    console = Console()

    async def _collect(session: Session) -> list[tuple[str, str, str]]:
        binder = session.binder
        rows = []
        for action in [*binder.run_actions(), *binder.debug_actions()]:
            command = action.resolve(file_path).command_line if file_path else ""
            rows.append((action.key, action.title, command))
        return rows

    rows = run_session(_collect, console)
    if not rows:
        console.print("No running devices; no run or debug actions available.")
        return

    table = Table()
    table.add_column("Action", style="cyan")
    table.add_column("Device", style="green")
    if file_path:
        table.add_column("Command")
    for key, title, command in rows:
        table.add_row(key, title, *([command] if file_path else []))
    console.print(table)


def register(app: typer.Typer) -> None:
    app.command()(actions)
