"""Machine directory: the authoritative record of remote machines."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterator
from typing import Protocol
from uuid import uuid4

from devlink.core.bus import MACHINE_STATUS, EventBus
from devlink.core.descriptor import decode_descriptor
from devlink.errors import MachineDirectoryError
from devlink.models import (
    DEFAULT_PORT,
    MachineConfig,
    MachineStatus,
    MachineStatusChanged,
    RemoteMachine,
)
from devlink.storage import Database

logger = logging.getLogger(__name__)


class MachineDirectory(Protocol):
    async def list_machines(self) -> list[RemoteMachine]: ...

    async def get_by_id(self, machine_id: str) -> RemoteMachine: ...

    async def create_and_connect(self, config: MachineConfig) -> RemoteMachine: ...

    async def connect_by_id(self, machine_id: str) -> RemoteMachine: ...

    async def disconnect(self, machine_id: str, destructive: bool) -> RemoteMachine: ...


async def probe_endpoint(host: str, port: str, timeout: float) -> str | None:
    """Open and close a TCP connection; return an error message on failure."""
    try:
        port_number = int(port)
    except ValueError:
        return f"Invalid port '{port}'"

    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port_number), timeout=timeout
        )
    except (asyncio.TimeoutError, TimeoutError):
        return f"Timed out connecting to {host}:{port}"
    except OSError as exc:
        return f"Cannot reach {host}:{port}: {exc}"

    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()
    return None


@contextlib.contextmanager
def _storage_errors() -> Iterator[None]:
    try:
        yield
    except ValueError as exc:
        raise MachineDirectoryError(str(exc)) from exc


class LocalMachineDirectory:
    """Machine directory persisted in the local data dir.

    A machine is RUNNING once its descriptor's ``host:port`` accepts a TCP
    connection. Every status change is published on ``MACHINE_STATUS``.
    """

    def __init__(self, db: Database, bus: EventBus, *, probe_timeout: float = 5.0) -> None:
        self._db = db
        self._bus = bus
        self._probe_timeout = probe_timeout
        self._tasks: set[asyncio.Task[None]] = set()

    async def list_machines(self) -> list[RemoteMachine]:
        with _storage_errors():
            return self._db.load_machines()

    async def get_by_id(self, machine_id: str) -> RemoteMachine:
        with _storage_errors():
            machine = self._db.get_machine(machine_id)
        if machine is None:
            raise MachineDirectoryError(f"Machine '{machine_id}' not found")
        return machine

    async def create_and_connect(self, config: MachineConfig) -> RemoteMachine:
        for existing in await self.list_machines():
            if existing.name == config.name:
                raise MachineDirectoryError(f"Machine '{config.name}' already exists")

        machine = RemoteMachine(
            id=f"machine{uuid4().hex[:16]}",
            name=config.name,
            type=config.type,
            status=MachineStatus.CREATING,
            connection_descriptor=config.descriptor,
        )
        with _storage_errors():
            self._db.upsert_machine(machine)
        logger.debug("Created machine '%s' (%s)", machine.name, machine.id)
        await self._publish(machine)

        task = asyncio.create_task(self._activate_in_background(machine.id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return machine

    async def connect_by_id(self, machine_id: str) -> RemoteMachine:
        await self.get_by_id(machine_id)
        machine = await self._activate(machine_id)
        if machine.status is MachineStatus.ERROR:
            raise MachineDirectoryError(machine.error_message or "")
        return machine

    async def disconnect(self, machine_id: str, destructive: bool) -> RemoteMachine:
        machine = await self.get_by_id(machine_id)
        with _storage_errors():
            if destructive:
                self._db.remove_machine(machine_id)
                updated = machine.model_copy(update={"status": MachineStatus.DESTROYED})
            else:
                updated = machine.model_copy(
                    update={"status": MachineStatus.STOPPED, "error_message": None}
                )
                self._db.upsert_machine(updated)
        logger.debug("Machine '%s' is now %s", updated.name, updated.status.value)
        await self._publish(updated)
        return updated

    async def wait_idle(self) -> None:
        """Wait until every background activation has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _activate_in_background(self, machine_id: str) -> None:
        try:
            await self._activate(machine_id)
        except MachineDirectoryError as exc:
            logger.error("Failed to activate machine '%s': %s", machine_id, exc.message)

    async def _activate(self, machine_id: str) -> RemoteMachine:
        machine = await self.get_by_id(machine_id)
        decoded = decode_descriptor(machine.connection_descriptor)
        host = decoded.host or ""
        port = decoded.port or DEFAULT_PORT

        if host:
            error = await probe_endpoint(host, port, self._probe_timeout)
        else:
            error = "No host configured"

        with _storage_errors():
            current = self._db.get_machine(machine_id)
            if current is None:
                # torn down while probing
                return machine

            status = MachineStatus.RUNNING if error is None else MachineStatus.ERROR
            updated = current.model_copy(update={"status": status, "error_message": error})
            self._db.upsert_machine(updated)
        logger.debug("Machine '%s' is now %s", updated.name, status.value)
        await self._publish(updated)
        return updated

    async def _publish(self, machine: RemoteMachine) -> None:
        await self._bus.publish(
            MACHINE_STATUS,
            MachineStatusChanged(
                machine_id=machine.id,
                device_name=machine.name,
                status=machine.status,
                error_message=machine.error_message,
            ),
        )
