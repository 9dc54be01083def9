"""Connect, create, disconnect and delete workflows for devices.

Completion of a connect request is observed on the status bus rather than
from the directory call itself: the directory acknowledges the request, the
machine later reports RUNNING or ERROR, and only then is the pending
connection resolved. Events that do not match the pending connection are
ignored, which keeps duplicate and late deliveries harmless.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from enum import Enum

from devlink.core.bus import AGENT_STATE, MACHINE_STATE, MACHINE_STATUS, EventBus
from devlink.core.descriptor import encode_descriptor, restore_device
from devlink.core.directory import MachineDirectory
from devlink.core.discovery import DiscoveryService
from devlink.core.notifications import (
    DisplayMode,
    Notification,
    NotificationSink,
    NotificationStatus,
)
from devlink.core.prompts import (
    AutoConfirm,
    ConfirmationDialog,
    ConfirmationResult,
    SoftwareManager,
)
from devlink.core.store import DeviceStore
from devlink.errors import (
    ConnectionInProgressError,
    DeviceValidationError,
    MachineDirectoryError,
    SubscriptionError,
)
from devlink.models import (
    AgentState,
    Device,
    DeviceCategory,
    LifecycleAction,
    MachineConfig,
    MachineStateEvent,
    MachineStatus,
    MachineStatusChanged,
    RemoteMachine,
    WorkspaceAgentEvent,
)

logger = logging.getLogger(__name__)


class ConnectState(str, Enum):
    IDLE = "IDLE"
    REQUESTED = "REQUESTED"
    VERIFYING = "VERIFYING"
    CONNECTED = "CONNECTED"
    FAILED = "FAILED"


@dataclass
class PendingConnection:
    target_device_name: str
    notification: Notification
    state: ConnectState = ConnectState.REQUESTED
    machine_id: str | None = None
    finished: asyncio.Event = field(default_factory=asyncio.Event, repr=False)


class ConnectionOrchestrator:
    def __init__(
        self,
        directory: MachineDirectory,
        store: DeviceStore,
        bus: EventBus,
        notifications: NotificationSink,
        *,
        discovery: DiscoveryService | None = None,
        confirmation: ConfirmationDialog | None = None,
        software: SoftwareManager | None = None,
        verify_delay: float = 1.0,
        connect_timeout: float = 120.0,
    ) -> None:
        self._directory = directory
        self._store = store
        self._bus = bus
        self._notifications = notifications
        self._discovery = discovery
        self._confirmation = confirmation or AutoConfirm()
        self._software = software
        self._verify_delay = verify_delay
        self._connect_timeout = connect_timeout

        self._pending: PendingConnection | None = None
        self._last: PendingConnection | None = None
        self._timeout_task: asyncio.Task[None] | None = None
        self._subscriptions: list[str] = []

    @property
    def store(self) -> DeviceStore:
        return self._store

    @property
    def pending(self) -> PendingConnection | None:
        return self._pending

    @property
    def state(self) -> ConnectState:
        return self._pending.state if self._pending else ConnectState.IDLE

    @property
    def subscribed(self) -> bool:
        return bool(self._subscriptions)

    def start(self) -> bool:
        """Subscribe to status events; without them only polling reconciles."""
        try:
            self._subscriptions.append(
                self._bus.subscribe(MACHINE_STATUS, self._on_machine_status)
            )
            self._subscriptions.append(self._bus.subscribe(AGENT_STATE, self._on_agent_state))
        except SubscriptionError as exc:
            logger.error("Status events unavailable, falling back to polling: %s", exc)
            self.stop()
            return False
        return True

    def stop(self) -> None:
        for sub_id in self._subscriptions:
            self._bus.unsubscribe(sub_id)
        self._subscriptions.clear()
        self._cancel_timeout()

    async def discover(self) -> list[str]:
        if self._discovery is None:
            return []
        try:
            devices = await self._discovery.get_devices()
        except Exception as exc:
            logger.error("Failed to discover devices: %s", exc)
            return []
        return [device.ip_address for device in devices]

    async def refresh(self, select_name: str | None = None) -> None:
        try:
            machines = await self._directory.list_machines()
        except MachineDirectoryError as exc:
            logger.error("Failed to list machines: %s", exc.message)
            return

        self._store.replace_all([self._device_from(m) for m in machines], machines)

        target = self._store.find_by_name(select_name) if select_name else None
        if target is None and len(self._store):
            target = self._store.devices[0]
        self._store.select(target)

    async def save(self, device: Device) -> Device:
        # only managed devices are created as machines
        if device.category is not DeviceCategory.DEVICE:
            return device
        if self._pending is not None:
            raise ConnectionInProgressError(self._pending.target_device_name)

        self._check_valid(device)

        if device.connection_script is not None and device.id is not None:
            await self._connect_existing(device, device.id)
        else:
            device.connection_script = encode_descriptor(device)
            device.is_dirty = False
            await self.connect(device)
        return device

    async def connect(self, device: Device) -> None:
        if self._pending is not None:
            raise ConnectionInProgressError(self._pending.target_device_name)
        self._check_valid(device)
        if device.connection_script is None:
            device.connection_script = encode_descriptor(device)

        notification = self._notifications.notify(
            f"Connecting to {device.name}...", NotificationStatus.PROGRESS, DisplayMode.FLOAT
        )
        pending = PendingConnection(target_device_name=device.name, notification=notification)
        self._pending = self._last = pending

        config = MachineConfig(
            name=device.name,
            type=DeviceCategory.DEVICE.value,
            descriptor=device.connection_script,
        )
        try:
            machine = await self._directory.create_and_connect(config)
        except MachineDirectoryError as exc:
            self._fail(pending, exc.message)
            return

        if self._pending is pending:
            pending.machine_id = pending.machine_id or machine.id
            self._arm_timeout(pending)

    async def disconnect(self, device: Device) -> None:
        if not device.is_connected:
            return
        machine = self._store.backing_machine(device)
        if machine is None or machine.status is not MachineStatus.RUNNING:
            return

        try:
            await self._directory.disconnect(machine.id, destructive=False)
        except MachineDirectoryError as exc:
            self._notify_failure(f"Failed to disconnect from {device.name}", exc.message)
            return

        await self._bus.publish(
            MACHINE_STATE, MachineStateEvent(machine=machine, action=LifecycleAction.DESTROYED)
        )
        self._notifications.notify(
            f"Disconnected from {device.name}", NotificationStatus.SUCCESS, DisplayMode.FLOAT
        )
        await self.refresh(select_name=machine.name)

    async def delete_device(self, device: Device) -> bool:
        answer = await self._confirmation.ask(f"Delete device '{device.name}'?")
        if answer is not ConfirmationResult.ACCEPTED:
            return False

        name = device.name
        machine = self._store.backing_machine(device)
        if machine is None:
            self._store.remove(device)
            self._notifications.notify(
                f"Deleted device {name}", NotificationStatus.SUCCESS, DisplayMode.FLOAT
            )
            return True

        try:
            await self._directory.disconnect(machine.id, destructive=True)
        except MachineDirectoryError as exc:
            self._store.remove(device)
            self._notify_failure(f"Failed to delete device {name}", exc.message)
            await self.refresh(select_name=name)
            return False

        if machine.status is MachineStatus.RUNNING:
            await self._bus.publish(
                MACHINE_STATE,
                MachineStateEvent(machine=machine, action=LifecycleAction.DESTROYED),
            )
            self._notifications.notify(
                f"Disconnected from {name}", NotificationStatus.SUCCESS, DisplayMode.FLOAT
            )
        self._store.remove(device)
        self._store.select(None)
        self._notifications.notify(
            f"Deleted device {name}", NotificationStatus.SUCCESS, DisplayMode.FLOAT
        )
        return True

    async def poll(self) -> None:
        """Reconcile without status events by asking the directory directly."""
        pending = self._pending
        if pending is None or pending.machine_id is None:
            selected = self._store.selected
            await self.refresh(select_name=selected.name if selected else None)
            return

        try:
            machine = await self._directory.get_by_id(pending.machine_id)
        except MachineDirectoryError as exc:
            logger.warning("Failed to poll machine '%s': %s", pending.machine_id, exc.message)
            return
        await self._on_machine_status(
            MachineStatusChanged(
                machine_id=machine.id,
                device_name=machine.name,
                status=machine.status,
                error_message=machine.error_message,
            )
        )

    async def wait_for_connection(
        self, timeout: float | None = None, poll_interval: float = 1.0
    ) -> ConnectState:
        """Wait for the latest connect request to finish and return its state.

        Raises ``asyncio.TimeoutError`` if ``timeout`` elapses first.
        """
        pending = self._pending or self._last
        if pending is None:
            return ConnectState.IDLE

        async def _wait() -> None:
            while not pending.finished.is_set():
                if self.subscribed:
                    await pending.finished.wait()
                    continue
                await self.poll()
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(pending.finished.wait(), poll_interval)

        await asyncio.wait_for(_wait(), timeout)
        return pending.state

    async def _on_machine_status(self, event: MachineStatusChanged) -> None:
        pending = self._pending
        if pending is None or pending.target_device_name != event.device_name:
            return
        if pending.state is not ConnectState.REQUESTED:
            return

        if event.status is MachineStatus.RUNNING:
            await self._verify(pending, event.machine_id)
        elif event.status is MachineStatus.ERROR:
            self._fail(pending, event.error_message)

    async def _on_agent_state(self, event: WorkspaceAgentEvent) -> None:
        if event.state is AgentState.STARTED:
            await self.refresh()

    async def _verify(self, pending: PendingConnection, machine_id: str) -> None:
        pending.state = ConnectState.VERIFYING
        pending.machine_id = machine_id
        # RUNNING can be reported before the endpoint accepts connections
        await asyncio.sleep(self._verify_delay)
        if self._pending is not pending:
            return

        try:
            machine = await self._directory.get_by_id(machine_id)
        except MachineDirectoryError as exc:
            self._fail(pending, exc.message)
            return

        if machine.status is not MachineStatus.RUNNING:
            self._fail(pending, machine.error_message)
            return
        await self._on_connected(pending, machine)

    async def _on_connected(self, pending: PendingConnection, machine: RemoteMachine) -> None:
        try:
            await self._bus.publish(
                MACHINE_STATE, MachineStateEvent(machine=machine, action=LifecycleAction.RUNNING)
            )
            pending.notification.update(
                title=f"Connected to {machine.name}", status=NotificationStatus.SUCCESS
            )
            self._finish(pending, ConnectState.CONNECTED)
            await self._run_software_check(machine.name)
            await self.refresh(select_name=machine.name)
        finally:
            pending.finished.set()

    async def _connect_existing(self, device: Device, machine_id: str) -> None:
        notification = self._notifications.notify(
            f"Connecting to {device.name}...", NotificationStatus.PROGRESS, DisplayMode.FLOAT
        )
        try:
            machine = await self._directory.connect_by_id(machine_id)
        except MachineDirectoryError as exc:
            if exc.message:
                notification.update(
                    title=f"Failed to connect to {device.name}",
                    content=exc.message,
                    status=NotificationStatus.FAIL,
                )
            return

        await self._bus.publish(
            MACHINE_STATE, MachineStateEvent(machine=machine, action=LifecycleAction.RUNNING)
        )
        notification.update(
            title=f"Connected to {machine.name}", status=NotificationStatus.SUCCESS
        )
        await self.refresh(select_name=machine.name)

    async def _run_software_check(self, device_name: str) -> None:
        if self._software is None:
            return
        try:
            await self._software.check_and_install(device_name)
        except Exception as exc:
            logger.error("Software check failed on '%s': %s", device_name, exc)

    def _device_from(self, machine: RemoteMachine) -> Device:
        device = Device(
            name=machine.name,
            category=DeviceCategory.DEVICE,
            connection_script=machine.connection_descriptor,
            id=machine.id,
        )
        restore_device(device)
        device.is_connected = machine.status is MachineStatus.RUNNING
        return device

    def _fail(self, pending: PendingConnection, reason: str | None) -> None:
        if self._pending is not pending:
            return
        self._finish(pending, ConnectState.FAILED)
        # without a reason the progress notification is left as it is
        if reason:
            pending.notification.update(
                title=f"Failed to connect to {pending.target_device_name}",
                content=reason,
                status=NotificationStatus.FAIL,
            )
        pending.finished.set()

    def _check_valid(self, device: Device) -> None:
        validation = self._store.validate(device)
        if not validation.valid:
            raise DeviceValidationError(
                f"Cannot save '{self._store.edited_name(device)}': "
                + "; ".join(validation.problems())
            )

    def _finish(self, pending: PendingConnection, state: ConnectState) -> None:
        pending.state = state
        if self._pending is pending:
            self._pending = None
        self._cancel_timeout()

    def _notify_failure(self, title: str, reason: str) -> None:
        notification = self._notifications.notify(
            title, NotificationStatus.FAIL, DisplayMode.FLOAT
        )
        if reason:
            notification.update(content=reason)

    def _arm_timeout(self, pending: PendingConnection) -> None:
        if self._connect_timeout <= 0:
            return
        self._cancel_timeout()
        self._timeout_task = asyncio.create_task(self._expire(pending))

    async def _expire(self, pending: PendingConnection) -> None:
        await asyncio.sleep(self._connect_timeout)
        self._timeout_task = None
        if self._pending is pending and pending.state is ConnectState.REQUESTED:
            logger.warning("Connection to '%s' timed out", pending.target_device_name)
            self._fail(
                pending,
                f"No response from '{pending.target_device_name}' "
                f"after {self._connect_timeout:g}s",
            )

    def _cancel_timeout(self) -> None:
        task = self._timeout_task
        self._timeout_task = None
        if task is not None and not task.done():
            task.cancel()
