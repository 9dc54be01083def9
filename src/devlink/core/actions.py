"""Run and debug actions that follow the set of running devices."""

from __future__ import annotations

import logging
import posixpath
import shlex
from collections.abc import Iterator

from pydantic import BaseModel

from devlink.core.bus import AGENT_STATE, MACHINE_STATE, EventBus
from devlink.core.descriptor import decode_descriptor
from devlink.core.directory import MachineDirectory
from devlink.errors import MachineDirectoryError, SubscriptionError
from devlink.models import (
    DEFAULT_REPLICATION_FOLDER,
    AgentState,
    DeviceCategory,
    LifecycleAction,
    MachineStateEvent,
    MachineStatus,
    RemoteMachine,
    WorkspaceAgentEvent,
)

logger = logging.getLogger(__name__)

RUN_GROUP_ID = "runActionsPopUpGroup"
DEBUG_GROUP_ID = "debugActionsPopUpGroup"
TOOLBAR_GROUP_ID = "debugAndRunActionsToolbarGroup"
DEFAULT_DEBUG_PORT = 1234


class Command(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    name: str
    command_line: str
    machine_id: str
    type: str = "custom"


class Action:
    """Anything that can be registered and shown to the user."""

    def __init__(self, title: str) -> None:
        self.title = title


class BinaryAction(Action):
    kind = ""

    def __init__(self, machine: RemoteMachine) -> None:
        super().__init__(machine.name)
        self.machine = machine

    @property
    def key(self) -> str:
        return f"{self.kind}{self.machine.id}"

    @property
    def replication_folder(self) -> str:
        decoded = decode_descriptor(self.machine.connection_descriptor)
        return decoded.replication_folder or DEFAULT_REPLICATION_FOLDER

    def resolve(self, file_path: str) -> Command:
        """Build the command line that runs ``file_path`` on the bound machine.

        ``file_path`` is relative to the machine's replication folder.
        """
        relative = posixpath.normpath(file_path.lstrip("/"))
        directory = posixpath.join(self.replication_folder, posixpath.dirname(relative))
        return Command(
            name=self.kind,
            command_line=self._command_line(
                posixpath.normpath(directory), posixpath.basename(relative)
            ),
            machine_id=self.machine.id,
        )

    def _command_line(self, directory: str, filename: str) -> str:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.machine.name!r}, id={self.machine.id!r})"


class RunBinaryAction(BinaryAction):
    kind = "run"

    def _command_line(self, directory: str, filename: str) -> str:
        return f"cd {shlex.quote(directory)} && ./{shlex.quote(filename)}"


class DebugBinaryAction(BinaryAction):
    kind = "debug"

    def __init__(self, machine: RemoteMachine, debug_port: int = DEFAULT_DEBUG_PORT) -> None:
        super().__init__(machine)
        self.debug_port = debug_port

    def _command_line(self, directory: str, filename: str) -> str:
        return (
            f"cd {shlex.quote(directory)} && "
            f"gdbserver :{self.debug_port} ./{shlex.quote(filename)}"
        )


class ActionGroup(Action):
    """Ordered, named collection of actions."""

    def __init__(self, title: str) -> None:
        super().__init__(title)
        self._children: list[Action] = []

    def add(self, action: Action, first: bool = False) -> None:
        if first:
            self._children.insert(0, action)
        else:
            self._children.append(action)

    def remove(self, action: Action | None) -> None:
        if action is not None and action in self._children:
            self._children.remove(action)

    @property
    def children(self) -> list[Action]:
        return list(self._children)

    def __len__(self) -> int:
        return len(self._children)

    def __iter__(self) -> Iterator[Action]:
        return iter(list(self._children))


class ToolbarGroup(ActionGroup):
    """Toolbar entry shown only while at least one debug action exists."""

    def __init__(self, title: str, debug_group: ActionGroup) -> None:
        super().__init__(title)
        self._debug_group = debug_group

    @property
    def visible(self) -> bool:
        return len(self._debug_group) != 0


class ActionRegistry:
    def __init__(self) -> None:
        self._actions: dict[str, Action] = {}

    def register(self, key: str, action: Action) -> None:
        self._actions[key] = action

    def unregister(self, key: str) -> Action | None:
        return self._actions.pop(key, None)

    def get(self, key: str) -> Action | None:
        return self._actions.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._actions

    def keys(self) -> list[str]:
        return list(self._actions)


class ActionLifecycleBinder:
    """Mirrors machine lifecycle events into run and debug actions.

    Actions for the most recently started machine come first in each group.
    """

    def __init__(
        self,
        bus: EventBus,
        directory: MachineDirectory,
        registry: ActionRegistry | None = None,
        *,
        category: str = DeviceCategory.DEVICE.value,
        debug_port: int = DEFAULT_DEBUG_PORT,
    ) -> None:
        self._bus = bus
        self._directory = directory
        self.registry = registry or ActionRegistry()
        self._category = category
        self._debug_port = debug_port
        self._subscriptions: list[str] = []

        self.run_group = ActionGroup("Run Binary")
        self.debug_group = ActionGroup("Debug Binary")
        self.toolbar_group = ToolbarGroup("Debug and Run", self.debug_group)
        self.toolbar_group.add(self.run_group)
        self.toolbar_group.add(self.debug_group)

        self.registry.register(RUN_GROUP_ID, self.run_group)
        self.registry.register(DEBUG_GROUP_ID, self.debug_group)
        self.registry.register(TOOLBAR_GROUP_ID, self.toolbar_group)

    def start(self) -> bool:
        try:
            self._subscriptions.append(
                self._bus.subscribe(MACHINE_STATE, self._on_machine_state)
            )
            self._subscriptions.append(self._bus.subscribe(AGENT_STATE, self._on_agent_state))
        except SubscriptionError as exc:
            logger.error("Machine lifecycle events unavailable: %s", exc)
            self.stop()
            return False
        return True

    def stop(self) -> None:
        for sub_id in self._subscriptions:
            self._bus.unsubscribe(sub_id)
        self._subscriptions.clear()

    def is_eligible(self, machine: RemoteMachine) -> bool:
        return machine.type == self._category

    def add_actions(self, machine: RemoteMachine) -> bool:
        if not self.is_eligible(machine):
            return False
        if f"{DebugBinaryAction.kind}{machine.id}" in self.registry:
            return False

        debug_action = DebugBinaryAction(machine, self._debug_port)
        self.registry.register(debug_action.key, debug_action)
        self.debug_group.add(debug_action, first=True)

        run_action = RunBinaryAction(machine)
        self.registry.register(run_action.key, run_action)
        self.run_group.add(run_action, first=True)

        logger.debug("Added run/debug actions for '%s'", machine.name)
        return True

    def remove_actions(self, machine: RemoteMachine) -> None:
        if not self.is_eligible(machine):
            return
        for kind, group in (
            (DebugBinaryAction.kind, self.debug_group),
            (RunBinaryAction.kind, self.run_group),
        ):
            group.remove(self.registry.unregister(f"{kind}{machine.id}"))

    def run_actions(self) -> list[RunBinaryAction]:
        return [a for a in self.run_group if isinstance(a, RunBinaryAction)]

    def debug_actions(self) -> list[DebugBinaryAction]:
        return [a for a in self.debug_group if isinstance(a, DebugBinaryAction)]

    def _on_machine_state(self, event: MachineStateEvent) -> None:
        if event.action is LifecycleAction.RUNNING:
            self.add_actions(event.machine)
        elif event.action is LifecycleAction.DESTROYED:
            self.remove_actions(event.machine)

    async def _on_agent_state(self, event: WorkspaceAgentEvent) -> None:
        if event.state is not AgentState.STARTED:
            return
        try:
            machines = await self._directory.list_machines()
        except MachineDirectoryError as exc:
            logger.error("Failed to list machines: %s", exc.message)
            return
        for machine in machines:
            if machine.status is MachineStatus.RUNNING:
                self.add_actions(machine)
