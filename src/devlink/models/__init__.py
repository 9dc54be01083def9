"""Data models for devlink."""

from devlink.models.device import (
    DEFAULT_PORT,
    DEFAULT_REPLICATION_FOLDER,
    DEFAULT_USERNAME,
    SSH_SOURCE_TYPE,
    Device,
    DeviceCategory,
    MachineConfig,
    MachineStatus,
    RemoteMachine,
)
from devlink.models.events import (
    AgentState,
    LifecycleAction,
    MachineStateEvent,
    MachineStatusChanged,
    WorkspaceAgentEvent,
)
from devlink.models.validation import DeviceValidation

__all__ = [
    "DEFAULT_PORT",
    "DEFAULT_REPLICATION_FOLDER",
    "DEFAULT_USERNAME",
    "SSH_SOURCE_TYPE",
    "AgentState",
    "Device",
    "DeviceCategory",
    "DeviceValidation",
    "LifecycleAction",
    "MachineConfig",
    "MachineStateEvent",
    "MachineStatus",
    "MachineStatusChanged",
    "RemoteMachine",
    "WorkspaceAgentEvent",
]
