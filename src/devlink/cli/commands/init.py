from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from devlink.cli.common import build_database
from devlink.config import DatabaseConfig, Settings, resolve_config_path, write_settings


def register(app: typer.Typer) -> None:
    @app.command()
    def init(
        data_dir: Annotated[
            Path | None,
            typer.Option("--data-dir", "--path", help="Custom data directory"),
        ] = None,
        force: Annotated[
            bool,
            typer.Option("--force", "-f", help="Overwrite existing config and data"),
        ] = False,
    ) -> None:
        """Initialize devlink configuration and the machine database."""
        console = Console()

        settings = Settings()
        if data_dir is not None:
            settings = Settings(database=DatabaseConfig(path=str(data_dir)))

        config_path, config_exists = resolve_config_path(allow_missing=True)
        if config_exists and not force:
            console.print(f"[dim]Config exists:[/dim] {config_path}")
        else:
            write_settings(settings, config_path)
            action = "Overwrote" if config_exists else "Created"
            console.print(f"[green]✓[/green] {action} config: {config_path}")

        db = build_database(settings, data_dir=data_dir)
        if db.init(force=force):
            console.print(f"[green]✓[/green] Initialized data dir: {db.path}")
        else:
            console.print(f"[dim]Data dir exists:[/dim] {db.path}")
