"""devlink - connect to remote development devices and keep run/debug actions in step."""

from __future__ import annotations

from importlib.metadata import version

from .config import ConnectionConfig, DatabaseConfig, Settings, get_settings
from .models import Device, DeviceCategory, MachineStatus, RemoteMachine
from .storage import Database

__all__ = [
    "ConnectionConfig",
    "Database",
    "DatabaseConfig",
    "Device",
    "DeviceCategory",
    "MachineStatus",
    "RemoteMachine",
    "Settings",
    "__version__",
    "get_settings",
]

__version__ = version("devlink")
