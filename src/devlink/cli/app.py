from __future__ import annotations

from typing import Annotated

import typer

from devlink.utils.logging import setup_logging

from .commands import config as config_cmd
from .commands.actions import register as register_actions
from .commands.devices import register as register_devices
from .commands.discover import register as register_discover
from .commands.init import register as register_init

app = typer.Typer(
    help="devlink - connect to and manage remote development devices",
    no_args_is_help=True,
)

app.add_typer(config_cmd.app, name="config")

register_init(app)
register_devices(app)
register_discover(app)
register_actions(app)


@app.callback(invoke_without_command=True)
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit"),
    ] = False,
) -> None:
    """devlink CLI."""
    setup_logging()

    if version:
        from importlib.metadata import version as get_version

        typer.echo(f"devlink version {get_version('devlink')}")
        raise typer.Exit()
