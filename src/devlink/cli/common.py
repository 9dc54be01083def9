from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import typer
from rich.console import Console

from devlink.config import (
    Settings,
    data_dir_from_settings,
    get_settings,
    resolve_config_path,
)
from devlink.core import Session
from devlink.core.notifications import ConsoleNotificationSink
from devlink.core.prompts import AutoConfirm, ConfirmationResult, LoggingSoftwareManager
from devlink.models import Device
from devlink.storage import Database

T = TypeVar("T")


class TyperConfirmation:
    async def ask(self, message: str) -> ConfirmationResult:
        if typer.confirm(message, default=False):
            return ConfirmationResult.ACCEPTED
        return ConfirmationResult.CANCELLED


def load_settings_or_exit() -> Settings:
    try:
        return get_settings()
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def resolve_config_path_or_exit(allow_missing: bool = False) -> tuple[Path, bool]:
    try:
        return resolve_config_path(allow_missing=allow_missing)
    except FileNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def build_database(settings: Settings, data_dir: Path | None = None) -> Database:
    path = data_dir or data_dir_from_settings(settings)
    return Database(path)


def build_session(
    settings: Settings, console: Console, assume_yes: bool = False
) -> Session:
    return Session(
        settings,
        notifications=ConsoleNotificationSink(console),
        confirmation=AutoConfirm() if assume_yes else TyperConfirmation(),
        software=LoggingSoftwareManager(),
        database=build_database(settings),
    )


def find_device_or_exit(session: Session, name: str, console: Console) -> Device:
    device = session.store.find_by_name(name)
    if device is None:
        console.print(f"[yellow]![/yellow] Device '{name}' not found")
        raise typer.Exit(1)
    return device


def run_session(
    body: Callable[[Session], Awaitable[T]], console: Console, assume_yes: bool = False
) -> T:
    """Open a session, run ``body`` against it and close it again."""
    settings = load_settings_or_exit()

    async def _main() -> T:
        async with build_session(settings, console, assume_yes=assume_yes) as session:
            return await body(session)

    return asyncio.run(_main())
