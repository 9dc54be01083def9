"""Events carried on the status bus."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from devlink.models.device import MachineStatus, RemoteMachine


class LifecycleAction(str, Enum):
    CREATING = "CREATING"
    RUNNING = "RUNNING"
    DESTROYED = "DESTROYED"


class AgentState(str, Enum):
    STARTED = "STARTED"
    STOPPED = "STOPPED"


class MachineStatusChanged(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    machine_id: str
    device_name: str
    status: MachineStatus
    error_message: str | None = None


class MachineStateEvent(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    machine: RemoteMachine
    action: LifecycleAction


class WorkspaceAgentEvent(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    state: AgentState
