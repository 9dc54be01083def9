from __future__ import annotations

from dataclasses import dataclass

import pytest

from devlink.config import get_settings
from devlink.core.actions import ActionLifecycleBinder
from devlink.core.bus import EventBus
from devlink.core.notifications import LoggingNotificationSink
from devlink.core.orchestrator import ConnectionOrchestrator
from devlink.core.prompts import AutoConfirm, LoggingSoftwareManager
from devlink.core.store import DeviceStore
from devlink.errors import MachineDirectoryError
from devlink.models import MachineConfig, MachineStatus, RemoteMachine


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("DEVLINK_CONFIG", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeMachineDirectory:
    """In-memory directory; status changes are driven by the test."""

    def __init__(self) -> None:
        self.machines: dict[str, RemoteMachine] = {}
        self.calls: list[str] = []
        self.failures: dict[str, MachineDirectoryError] = {}
        self._counter = 0

    def add_machine(
        self,
        name: str,
        status: MachineStatus = MachineStatus.RUNNING,
        descriptor: str | None = None,
        type: str = "artik",
    ) -> RemoteMachine:
        self._counter += 1
        machine = RemoteMachine(
            id=f"machine-{self._counter}",
            name=name,
            type=type,
            status=status,
            connection_descriptor=descriptor,
        )
        self.machines[machine.id] = machine
        return machine

    def set_status(
        self, machine_id: str, status: MachineStatus, error_message: str | None = None
    ) -> RemoteMachine:
        machine = self.machines[machine_id].model_copy(
            update={"status": status, "error_message": error_message}
        )
        self.machines[machine_id] = machine
        return machine

    def by_name(self, name: str) -> RemoteMachine:
        return next(m for m in self.machines.values() if m.name == name)

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        error = self.failures.get(operation)
        if error is not None:
            raise error

    async def list_machines(self) -> list[RemoteMachine]:
        self._record("list_machines")
        return list(self.machines.values())

    async def get_by_id(self, machine_id: str) -> RemoteMachine:
        self._record("get_by_id")
        if machine_id not in self.machines:
            raise MachineDirectoryError(f"Machine '{machine_id}' not found")
        return self.machines[machine_id]

    async def create_and_connect(self, config: MachineConfig) -> RemoteMachine:
        self._record("create_and_connect")
        return self.add_machine(
            config.name,
            status=MachineStatus.CREATING,
            descriptor=config.descriptor,
            type=config.type,
        )

    async def connect_by_id(self, machine_id: str) -> RemoteMachine:
        self._record("connect_by_id")
        return self.set_status(machine_id, MachineStatus.RUNNING)

    async def disconnect(self, machine_id: str, destructive: bool) -> RemoteMachine:
        self._record("disconnect")
        machine = self.machines[machine_id]
        if destructive:
            del self.machines[machine_id]
            return machine.model_copy(update={"status": MachineStatus.DESTROYED})
        return self.set_status(machine_id, MachineStatus.STOPPED)


@dataclass
class Env:
    bus: EventBus
    directory: FakeMachineDirectory
    store: DeviceStore
    notifications: LoggingNotificationSink
    confirmation: AutoConfirm
    software: LoggingSoftwareManager
    orchestrator: ConnectionOrchestrator
    binder: ActionLifecycleBinder


@pytest.fixture
def directory() -> FakeMachineDirectory:
    return FakeMachineDirectory()


@pytest.fixture
def env(directory: FakeMachineDirectory) -> Env:
    bus = EventBus()
    store = DeviceStore()
    notifications = LoggingNotificationSink()
    confirmation = AutoConfirm()
    software = LoggingSoftwareManager()
    orchestrator = ConnectionOrchestrator(
        directory,
        store,
        bus,
        notifications,
        confirmation=confirmation,
        software=software,
        verify_delay=0,
        connect_timeout=0,
    )
    binder = ActionLifecycleBinder(bus, directory)
    orchestrator.start()
    binder.start()
    return Env(
        bus=bus,
        directory=directory,
        store=store,
        notifications=notifications,
        confirmation=confirmation,
        software=software,
        orchestrator=orchestrator,
        binder=binder,
    )
