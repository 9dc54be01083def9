from __future__ import annotations

from .actions import (
    ActionGroup,
    ActionLifecycleBinder,
    ActionRegistry,
    Command,
    DebugBinaryAction,
    RunBinaryAction,
)
from .bus import AGENT_STATE, MACHINE_STATE, MACHINE_STATUS, Channel, EventBus
from .descriptor import decode_descriptor, encode_descriptor, restore_device
from .directory import LocalMachineDirectory, MachineDirectory
from .discovery import DiscoveredDevice, ZeroconfDiscovery
from .orchestrator import ConnectionOrchestrator, ConnectState
from .session import Session
from .store import DeviceStore, validate_device

__all__ = [
    "AGENT_STATE",
    "MACHINE_STATE",
    "MACHINE_STATUS",
    "ActionGroup",
    "ActionLifecycleBinder",
    "ActionRegistry",
    "Channel",
    "Command",
    "ConnectState",
    "ConnectionOrchestrator",
    "DebugBinaryAction",
    "DeviceStore",
    "DiscoveredDevice",
    "EventBus",
    "LocalMachineDirectory",
    "MachineDirectory",
    "RunBinaryAction",
    "Session",
    "ZeroconfDiscovery",
    "decode_descriptor",
    "encode_descriptor",
    "restore_device",
    "validate_device",
]
