"""Device and remote machine models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field

DEFAULT_PORT = "22"
DEFAULT_USERNAME = "root"
DEFAULT_REPLICATION_FOLDER = "/root"
SSH_SOURCE_TYPE = "ssh-config"


class DeviceCategory(str, Enum):
    DEVICE = "artik"
    GENERIC_SSH = "ssh-config"


class MachineStatus(str, Enum):
    CREATING = "CREATING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    ERROR = "ERROR"
    DESTROYED = "DESTROYED"


class Device(BaseModel):
    """Locally held, editable connection target."""

    model_config = {"extra": "forbid"}

    name: str
    category: DeviceCategory = DeviceCategory.DEVICE
    host: str = ""
    port: str = DEFAULT_PORT
    username: str = DEFAULT_USERNAME
    password: str = ""
    replication_folder: str = DEFAULT_REPLICATION_FOLDER
    connection_script: str | None = None
    id: str | None = None
    is_dirty: bool = False
    is_connected: bool = False
    # local identity, never persisted
    uid: str = Field(default_factory=lambda: uuid4().hex, exclude=True)


class RemoteMachine(BaseModel):
    """Server-tracked compute instance a device may be bound to."""

    model_config = {"frozen": True, "extra": "forbid"}

    id: str
    name: str
    type: str = DeviceCategory.DEVICE.value
    status: MachineStatus = MachineStatus.CREATING
    connection_descriptor: str | None = None
    error_message: str | None = None


class MachineConfig(BaseModel):
    """Request body for creating a machine from a connection descriptor."""

    model_config = {"frozen": True, "extra": "forbid"}

    name: str
    type: str = DeviceCategory.DEVICE.value
    source_type: str = SSH_SOURCE_TYPE
    descriptor: str
    ram_limit_mb: int = Field(default=1024, ge=1)
