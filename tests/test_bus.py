"""Tests for the event bus."""

from __future__ import annotations

import asyncio

import pytest

from devlink.core.bus import AGENT_STATE, MACHINE_STATUS, EventBus
from devlink.errors import SubscriptionError
from devlink.models import AgentState, MachineStatus, MachineStatusChanged, WorkspaceAgentEvent

STARTED = WorkspaceAgentEvent(state=AgentState.STARTED)


def test_publish_delivers_in_subscription_order():
    bus = EventBus()
    seen: list[str] = []

    async def first(event: WorkspaceAgentEvent) -> None:
        await asyncio.sleep(0)
        seen.append("first")

    def second(event: WorkspaceAgentEvent) -> None:
        seen.append("second")

    bus.subscribe(AGENT_STATE, first)
    bus.subscribe(AGENT_STATE, second)
    asyncio.run(bus.publish(AGENT_STATE, STARTED))

    assert seen == ["first", "second"]


def test_channels_are_isolated():
    bus = EventBus()
    seen: list[object] = []
    bus.subscribe(MACHINE_STATUS, seen.append)

    asyncio.run(bus.publish(AGENT_STATE, STARTED))
    assert seen == []
    assert bus.subscriber_count(MACHINE_STATUS) == 1
    assert bus.subscriber_count(AGENT_STATE) == 0


def test_failing_handler_does_not_stop_delivery(caplog):
    bus = EventBus()
    seen: list[object] = []

    def broken(event: WorkspaceAgentEvent) -> None:
        raise RuntimeError("boom")

    bus.subscribe(AGENT_STATE, broken)
    bus.subscribe(AGENT_STATE, seen.append)
    asyncio.run(bus.publish(AGENT_STATE, STARTED))

    assert seen == [STARTED]
    assert "boom" in caplog.text


def test_unsubscribe_stops_delivery():
    bus = EventBus()
    seen: list[object] = []
    sub_id = bus.subscribe(AGENT_STATE, seen.append)
    bus.unsubscribe(sub_id)
    bus.unsubscribe(sub_id)

    asyncio.run(bus.publish(AGENT_STATE, STARTED))
    assert seen == []


def test_publish_rejects_wrong_event_type():
    bus = EventBus()
    with pytest.raises(TypeError):
        asyncio.run(bus.publish(MACHINE_STATUS, STARTED))


def test_subscribe_on_closed_bus_fails():
    bus = EventBus()
    bus.close()
    with pytest.raises(SubscriptionError):
        bus.subscribe(
            MACHINE_STATUS,
            lambda event: None,
        )
    event = MachineStatusChanged(
        machine_id="m", device_name="d", status=MachineStatus.RUNNING
    )
    asyncio.run(bus.publish(MACHINE_STATUS, event))
