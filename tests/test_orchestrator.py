"""Tests for the connect, disconnect and delete workflows."""

from __future__ import annotations

import asyncio

import pytest

from devlink.core.bus import AGENT_STATE, MACHINE_STATUS, EventBus
from devlink.core.descriptor import encode_descriptor
from devlink.core.discovery import DiscoveredDevice
from devlink.core.notifications import LoggingNotificationSink, NotificationStatus
from devlink.core.orchestrator import ConnectionOrchestrator, ConnectState
from devlink.core.prompts import ConfirmationResult
from devlink.core.store import DeviceStore
from devlink.errors import (
    ConnectionInProgressError,
    DeviceValidationError,
    MachineDirectoryError,
)
from devlink.models import (
    AgentState,
    Device,
    DeviceCategory,
    MachineStatus,
    MachineStatusChanged,
    RemoteMachine,
    WorkspaceAgentEvent,
)

DESCRIPTOR = encode_descriptor(Device(name="board", host="10.0.0.5"))


def _status(
    machine: RemoteMachine, status: MachineStatus, error: str | None = None
) -> MachineStatusChanged:
    return MachineStatusChanged(
        machine_id=machine.id, device_name=machine.name, status=status, error_message=error
    )


async def _save_new(env, name: str = "board", host: str = "10.0.0.5") -> Device:
    device = env.store.new_device()
    env.store.apply_field(device, "name", name)
    env.store.apply_field(device, "host", host)
    await env.orchestrator.save(device)
    return device


async def _report(env, name: str, status: MachineStatus, error: str | None = None):
    machine = env.directory.by_name(name)
    machine = env.directory.set_status(machine.id, status, error)
    await env.bus.publish(MACHINE_STATUS, _status(machine, status, error))
    return machine


async def _start_agent(env) -> None:
    await env.bus.publish(AGENT_STATE, WorkspaceAgentEvent(state=AgentState.STARTED))


def test_save_connects_once_machine_reports_running(env):
    async def scenario():
        await _save_new(env)
        assert env.orchestrator.state is ConnectState.REQUESTED
        machine = await _report(env, "board", MachineStatus.RUNNING)
        state = await env.orchestrator.wait_for_connection(timeout=1)
        return machine, state

    machine, state = asyncio.run(scenario())

    assert state is ConnectState.CONNECTED
    assert env.orchestrator.pending is None
    assert [d.name for d in env.store if d.is_connected] == ["board"]
    assert env.store.selected is not None and env.store.selected.name == "board"
    assert env.store.find_by_name("board").host == "10.0.0.5"

    notification = env.notifications.notifications[0]
    assert notification.status is NotificationStatus.SUCCESS
    assert notification.title == "Connected to board"
    assert env.software.checked == ["board"]
    assert [a.key for a in env.binder.run_actions()] == [f"run{machine.id}"]


def test_duplicate_running_event_is_ignored(env):
    async def scenario():
        await _save_new(env)
        await _report(env, "board", MachineStatus.RUNNING)
        await _report(env, "board", MachineStatus.RUNNING)

    asyncio.run(scenario())

    assert env.directory.calls.count("get_by_id") == 1
    assert len(env.binder.run_actions()) == 1
    assert env.software.checked == ["board"]


def test_event_for_other_device_leaves_pending_untouched(env):
    async def scenario():
        await _save_new(env)
        env.directory.add_machine("other", status=MachineStatus.CREATING)
        await _report(env, "other", MachineStatus.ERROR, "unrelated")

    asyncio.run(scenario())

    assert env.orchestrator.state is ConnectState.REQUESTED
    assert env.notifications.latest().status is NotificationStatus.PROGRESS


def test_error_event_with_message_fails_connection(env):
    async def scenario():
        await _save_new(env)
        await _report(env, "board", MachineStatus.ERROR, "connection refused")
        return await env.orchestrator.wait_for_connection(timeout=1)

    assert asyncio.run(scenario()) is ConnectState.FAILED

    notification = env.notifications.latest()
    assert notification.status is NotificationStatus.FAIL
    assert notification.title == "Failed to connect to board"
    assert notification.content == "connection refused"
    assert env.orchestrator.pending is None
    assert env.binder.run_actions() == []


def test_error_event_without_message_is_silent(env):
    async def scenario():
        await _save_new(env)
        await _report(env, "board", MachineStatus.ERROR)
        return await env.orchestrator.wait_for_connection(timeout=1)

    assert asyncio.run(scenario()) is ConnectState.FAILED
    assert env.notifications.latest().status is NotificationStatus.PROGRESS
    assert env.orchestrator.pending is None


def test_verification_failure_fails_connection(env):
    async def scenario():
        await _save_new(env)
        machine = env.directory.by_name("board")
        env.directory.set_status(machine.id, MachineStatus.ERROR, "went away")
        await env.bus.publish(MACHINE_STATUS, _status(machine, MachineStatus.RUNNING))
        return await env.orchestrator.wait_for_connection(timeout=1)

    assert asyncio.run(scenario()) is ConnectState.FAILED
    assert env.notifications.latest().content == "went away"
    assert env.software.checked == []


def test_connect_times_out_without_status(directory):
    store = DeviceStore()
    sink = LoggingNotificationSink()
    orchestrator = ConnectionOrchestrator(
        directory, store, EventBus(), sink, verify_delay=0, connect_timeout=0.05
    )
    orchestrator.start()

    async def scenario():
        device = store.new_device()
        store.apply_field(device, "host", "10.0.0.5")
        await orchestrator.save(device)
        return await orchestrator.wait_for_connection(timeout=2)

    assert asyncio.run(scenario()) is ConnectState.FAILED
    assert sink.latest().status is NotificationStatus.FAIL
    assert "No response" in sink.latest().content


def test_second_connect_while_pending_is_rejected(env):
    async def scenario():
        await _save_new(env)
        other = env.store.new_device()
        env.store.apply_field(other, "host", "10.0.0.6")
        with pytest.raises(ConnectionInProgressError):
            await env.orchestrator.save(other)

    asyncio.run(scenario())
    assert env.directory.calls.count("create_and_connect") == 1


def test_invalid_device_never_reaches_directory(env):
    async def scenario():
        device = env.store.new_device()
        with pytest.raises(DeviceValidationError):
            await env.orchestrator.save(device)

    asyncio.run(scenario())
    assert env.directory.calls == []
    assert env.notifications.notifications == []


def test_connect_rejects_invalid_device(env):
    async def scenario():
        device = env.store.new_device()
        with pytest.raises(DeviceValidationError):
            await env.orchestrator.connect(device)

    asyncio.run(scenario())
    assert env.directory.calls == []
    assert env.notifications.notifications == []
    assert env.orchestrator.pending is None


def test_save_ignores_other_categories(env):
    async def scenario():
        device = env.store.new_device(DeviceCategory.GENERIC_SSH)
        return device, await env.orchestrator.save(device)

    device, result = asyncio.run(scenario())
    assert result is device
    assert device.connection_script is None
    assert env.directory.calls == []


@pytest.mark.parametrize(
    ("message", "expected"),
    [("quota exceeded", NotificationStatus.FAIL), ("", NotificationStatus.PROGRESS)],
)
def test_create_failure_notification(env, message, expected):
    env.directory.failures["create_and_connect"] = MachineDirectoryError(message)

    async def scenario():
        await _save_new(env)
        return await env.orchestrator.wait_for_connection(timeout=1)

    assert asyncio.run(scenario()) is ConnectState.FAILED
    assert env.notifications.latest().status is expected
    assert env.orchestrator.pending is None


def test_save_existing_device_connects_by_id(env):
    machine = env.directory.add_machine(
        "board", status=MachineStatus.STOPPED, descriptor=DESCRIPTOR
    )

    async def scenario():
        await env.orchestrator.refresh()
        await env.orchestrator.save(env.store.find_by_name("board"))

    asyncio.run(scenario())

    assert "connect_by_id" in env.directory.calls
    assert "create_and_connect" not in env.directory.calls
    assert env.store.find_by_name("board").is_connected
    assert env.notifications.latest().title == "Connected to board"
    assert [a.key for a in env.binder.debug_actions()] == [f"debug{machine.id}"]


def test_save_existing_failure_without_message_is_silent(env):
    env.directory.add_machine("board", status=MachineStatus.STOPPED, descriptor=DESCRIPTOR)
    env.directory.failures["connect_by_id"] = MachineDirectoryError()

    async def scenario():
        await env.orchestrator.refresh()
        await env.orchestrator.save(env.store.find_by_name("board"))

    asyncio.run(scenario())
    assert env.notifications.latest().status is NotificationStatus.PROGRESS


def test_disconnect_running_device(env):
    env.directory.add_machine("board", descriptor=DESCRIPTOR)

    async def scenario():
        await _start_agent(env)
        assert len(env.binder.run_actions()) == 1
        await env.orchestrator.disconnect(env.store.find_by_name("board"))

    asyncio.run(scenario())

    device = env.store.find_by_name("board")
    assert device is not None and not device.is_connected
    assert env.store.selected is device
    assert env.binder.run_actions() == []
    assert not env.binder.toolbar_group.visible
    assert env.notifications.latest().title == "Disconnected from board"


def test_disconnect_is_noop_when_not_connected(env):
    env.directory.add_machine("board", status=MachineStatus.STOPPED, descriptor=DESCRIPTOR)

    async def scenario():
        await env.orchestrator.refresh()
        await env.orchestrator.disconnect(env.store.find_by_name("board"))

    asyncio.run(scenario())
    assert "disconnect" not in env.directory.calls
    assert env.notifications.notifications == []


def test_disconnect_failure_notifies(env):
    env.directory.add_machine("board", descriptor=DESCRIPTOR)
    env.directory.failures["disconnect"] = MachineDirectoryError("agent unreachable")

    async def scenario():
        await env.orchestrator.refresh()
        await env.orchestrator.disconnect(env.store.find_by_name("board"))

    asyncio.run(scenario())
    notification = env.notifications.latest()
    assert notification.status is NotificationStatus.FAIL
    assert notification.content == "agent unreachable"
    assert env.store.find_by_name("board").is_connected


def test_delete_running_device(env):
    env.directory.add_machine("board", descriptor=DESCRIPTOR)

    async def scenario():
        await _start_agent(env)
        return await env.orchestrator.delete_device(env.store.find_by_name("board"))

    assert asyncio.run(scenario()) is True

    assert env.confirmation.asked == ["Delete device 'board'?"]
    assert env.store.find_by_name("board") is None
    assert env.store.selected is None
    assert env.directory.machines == {}
    assert env.binder.debug_actions() == []
    assert [n.title for n in env.notifications.notifications] == [
        "Disconnected from board",
        "Deleted device board",
    ]


def test_delete_renamed_connected_device_tears_down_machine(env):
    env.directory.add_machine("board", descriptor=DESCRIPTOR)

    async def scenario():
        await _start_agent(env)
        device = env.store.find_by_name("board")
        env.store.apply_field(device, "name", "board2")
        deleted = await env.orchestrator.delete_device(device)
        await env.orchestrator.refresh()
        return deleted

    assert asyncio.run(scenario()) is True

    assert "disconnect" in env.directory.calls
    assert env.directory.machines == {}
    assert env.binder.debug_actions() == []
    assert env.binder.run_actions() == []
    assert len(env.store) == 0
    assert [n.title for n in env.notifications.notifications] == [
        "Disconnected from board2",
        "Deleted device board2",
    ]


def test_disconnect_renamed_connected_device(env):
    machine = env.directory.add_machine("board", descriptor=DESCRIPTOR)

    async def scenario():
        await _start_agent(env)
        device = env.store.find_by_name("board")
        env.store.apply_field(device, "name", "board2")
        await env.orchestrator.disconnect(device)

    asyncio.run(scenario())

    assert env.directory.machines[machine.id].status is MachineStatus.STOPPED
    assert env.binder.run_actions() == []
    assert env.store.selected is not None and env.store.selected.name == "board"
    assert not env.store.selected.is_connected


def test_delete_cancelled_keeps_device(env):
    env.directory.add_machine("board", descriptor=DESCRIPTOR)
    env.confirmation.result = ConfirmationResult.CANCELLED

    async def scenario():
        await env.orchestrator.refresh()
        return await env.orchestrator.delete_device(env.store.find_by_name("board"))

    assert asyncio.run(scenario()) is False
    assert env.store.find_by_name("board") is not None
    assert "disconnect" not in env.directory.calls


def test_delete_unsaved_device_stays_local(env):
    async def scenario():
        device = env.store.new_device()
        return await env.orchestrator.delete_device(device)

    assert asyncio.run(scenario()) is True
    assert len(env.store) == 0
    assert env.directory.calls == []
    assert env.notifications.latest().title == "Deleted device artik_device_1"


def test_delete_failure_refreshes_store(env):
    env.directory.add_machine("board", descriptor=DESCRIPTOR)
    env.directory.failures["disconnect"] = MachineDirectoryError("busy")

    async def scenario():
        await env.orchestrator.refresh()
        return await env.orchestrator.delete_device(env.store.find_by_name("board"))

    assert asyncio.run(scenario()) is False
    notification = env.notifications.latest()
    assert notification.status is NotificationStatus.FAIL
    assert notification.content == "busy"
    # the machine still exists, so the refresh brings the device back
    assert env.store.find_by_name("board") is not None


def test_refresh_is_idempotent_and_selects(env):
    env.directory.add_machine("alpha", descriptor=DESCRIPTOR)
    env.directory.add_machine("beta", status=MachineStatus.STOPPED)

    async def scenario():
        await env.orchestrator.refresh()
        first = [(d.name, d.is_connected) for d in env.store]
        await env.orchestrator.refresh()
        second = [(d.name, d.is_connected) for d in env.store]
        await env.orchestrator.refresh(select_name="beta")
        return first, second

    first, second = asyncio.run(scenario())
    assert first == second == [("alpha", True), ("beta", False)]
    assert env.store.selected.name == "beta"


def test_refresh_failure_leaves_store_untouched(env):
    env.store.add(Device(name="local", host="h"))
    env.directory.failures["list_machines"] = MachineDirectoryError("offline")

    asyncio.run(env.orchestrator.refresh())
    assert [d.name for d in env.store] == ["local"]


def test_agent_start_refreshes_store(env):
    env.directory.add_machine("board", descriptor=DESCRIPTOR)
    asyncio.run(_start_agent(env))
    assert env.store.selected is not None and env.store.selected.name == "board"


class _Discovery:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error

    async def get_devices(self) -> list[DiscoveredDevice]:
        if self.error is not None:
            raise self.error
        return [DiscoveredDevice(ip_address="10.0.0.8", name="board", port=22)]


def test_discover_returns_addresses(directory):
    orchestrator = ConnectionOrchestrator(
        directory, DeviceStore(), EventBus(), LoggingNotificationSink(), discovery=_Discovery()
    )
    assert asyncio.run(orchestrator.discover()) == ["10.0.0.8"]


def test_discover_failure_degrades_to_empty(directory):
    orchestrator = ConnectionOrchestrator(
        directory,
        DeviceStore(),
        EventBus(),
        LoggingNotificationSink(),
        discovery=_Discovery(OSError("no multicast")),
    )
    assert asyncio.run(orchestrator.discover()) == []


def test_polling_fallback_when_subscription_fails(directory):
    bus = EventBus()
    bus.close()
    store = DeviceStore()
    orchestrator = ConnectionOrchestrator(
        directory, store, bus, LoggingNotificationSink(), verify_delay=0, connect_timeout=0
    )
    assert orchestrator.start() is False
    assert not orchestrator.subscribed

    async def scenario():
        device = store.new_device()
        store.apply_field(device, "host", "10.0.0.5")
        await orchestrator.save(device)
        machine = directory.by_name(device.name)
        directory.set_status(machine.id, MachineStatus.RUNNING)
        return await orchestrator.wait_for_connection(timeout=2, poll_interval=0.01)

    assert asyncio.run(scenario()) is ConnectState.CONNECTED
    assert [d.is_connected for d in store] == [True]
