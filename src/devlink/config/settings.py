from __future__ import annotations

import json
import os
import tomllib
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from .paths import default_config_path, default_data_dir, expand_path

CONFIG_ENV_VAR = "DEVLINK_CONFIG"


class DatabaseConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    path: str = Field(default_factory=lambda: str(default_data_dir()))


class ConnectionConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    verify_delay: float = Field(default=1.0, ge=0)
    # 0 waits forever for the machine to come up
    connect_timeout: float = Field(default=120.0, ge=0)
    probe_timeout: float = Field(default=5.0, gt=0)


class DiscoveryConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    service_type: str = "_ssh._tcp.local."
    timeout: float = Field(default=3.0, gt=0)


class ActionsConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    debug_port: int = Field(default=1234, ge=1, le=65535)


class Settings(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    actions: ActionsConfig = Field(default_factory=ActionsConfig)


def resolve_config_path(allow_missing: bool = False) -> tuple[Path, bool]:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = expand_path(env_path)
        if not allow_missing and not path.exists():
            raise FileNotFoundError(f"{CONFIG_ENV_VAR} points to missing file: {path}")
        return path, path.exists()

    path = default_config_path()
    return path, path.exists()


def load_settings(path: Path) -> Settings:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in config file: {path}\n{exc}") from exc

    try:
        return Settings.model_validate(data or {})
    except ValidationError as exc:
        raise ValueError(f"Invalid config file: {path}\n{exc}") from exc


@lru_cache
def get_settings() -> Settings:
    path, exists = resolve_config_path(allow_missing=False)
    if exists:
        return load_settings(path)
    return Settings()


def data_dir_from_settings(settings: Settings) -> Path:
    return expand_path(settings.database.path)


def _toml_string(value: str) -> str:
    return json.dumps(value)


def render_settings_toml(settings: Settings) -> str:
    connection = settings.connection
    lines = [
        "# devlink configuration",
        "",
        "[database]",
        f"path = {_toml_string(settings.database.path)}",
        "",
        "[connection]",
        f"verify_delay = {connection.verify_delay}",
        f"connect_timeout = {connection.connect_timeout}",
        f"probe_timeout = {connection.probe_timeout}",
        "",
        "[discovery]",
        f"service_type = {_toml_string(settings.discovery.service_type)}",
        f"timeout = {settings.discovery.timeout}",
        "",
        "[actions]",
        f"debug_port = {settings.actions.debug_port}",
        "",
    ]
    return "\n".join(lines)


def write_settings(settings: Settings, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_settings_toml(settings))
