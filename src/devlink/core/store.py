"""In-memory device records and their validation."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from devlink.core.descriptor import restore_device
from devlink.models import Device, DeviceCategory, DeviceValidation, RemoteMachine

logger = logging.getLogger(__name__)

VALID_NAME = re.compile(r"[A-Za-z0-9_-]*")
DEFAULT_NAME = "artik_device"

EDITABLE_FIELDS = frozenset(
    {"name", "host", "port", "username", "password", "replication_folder"}
)


def validate_device(
    name: str, host: str, port: str, other_names: Iterable[str]
) -> DeviceValidation:
    """Validate an edited device against the names of every other device."""
    return DeviceValidation(
        name_invalid=not name or VALID_NAME.fullmatch(name) is None,
        name_duplicate=name in set(other_names),
        host_empty=not host,
        port_empty=not port,
    )


class DeviceStore:
    """Editable device records plus the last-known machine for each name.

    A rename that would leave the store with an invalid or duplicate name is
    kept as a draft for that device and only committed once it validates.
    """

    def __init__(self) -> None:
        self._devices: list[Device] = []
        self._machines: dict[str, RemoteMachine] = {}
        self._selected: Device | None = None
        self._name_drafts: dict[str, str] = {}

    @property
    def devices(self) -> list[Device]:
        return list(self._devices)

    @property
    def selected(self) -> Device | None:
        return self._selected

    def __len__(self) -> int:
        return len(self._devices)

    def __iter__(self):
        return iter(list(self._devices))

    def add(self, device: Device) -> None:
        if self.find_by_name(device.name) is not None:
            raise ValueError(f"Device '{device.name}' already exists")
        self._devices.append(device)

    def remove(self, device: Device) -> bool:
        """Remove the device with ``device``'s name; absent devices are ignored."""
        existing = self.find_by_name(device.name)
        if existing is None:
            return False
        self._devices.remove(existing)
        self._name_drafts.pop(existing.uid, None)
        if self._selected is existing:
            self._selected = None
        return True

    def find_by_name(self, name: str) -> Device | None:
        for device in self._devices:
            if device.name == name:
                return device
        return None

    def machine_for(self, name: str) -> RemoteMachine | None:
        return self._machines.get(name)

    def backing_machine(self, device: Device) -> RemoteMachine | None:
        """Return the machine behind ``device``, matched by id before name."""
        if device.id is not None:
            for machine in self._machines.values():
                if machine.id == device.id:
                    return machine
        return self._machines.get(device.name)

    def select(self, device: Device | None) -> None:
        if device is not None and device not in self._devices:
            raise ValueError(f"Device '{device.name}' is not in the store")
        self._selected = device

    def edited_name(self, device: Device) -> str:
        return self._name_drafts.get(device.uid, device.name)

    def validate(self, device: Device) -> DeviceValidation:
        others = (d.name for d in self._devices if d is not device)
        return validate_device(self.edited_name(device), device.host, device.port, others)

    def apply_field(self, device: Device, field: str, value: str) -> DeviceValidation:
        if field not in EDITABLE_FIELDS:
            raise ValueError(f"Field '{field}' is not editable")

        if field == "name":
            if value == self.edited_name(device):
                return self.validate(device)
            device.is_dirty = True
            self._name_drafts[device.uid] = value
            validation = self.validate(device)
            if not (validation.name_invalid or validation.name_duplicate):
                device.name = value
                self._name_drafts.pop(device.uid, None)
            return validation

        if getattr(device, field) != value:
            setattr(device, field, value)
            device.is_dirty = True
        return self.validate(device)

    def new_device(self, category: DeviceCategory = DeviceCategory.DEVICE) -> Device:
        """Add and select a blank device with a generated name."""
        device = Device(name=self.generate_name(), category=category, is_dirty=True)
        self._devices.append(device)
        self._selected = device
        return device

    def generate_name(self) -> str:
        index = 1
        while self.find_by_name(f"{DEFAULT_NAME}_{index}") is not None:
            index += 1
        return f"{DEFAULT_NAME}_{index}"

    def revert(self, device: Device) -> None:
        """Drop unsaved edits; a never-saved device is removed entirely."""
        self._name_drafts.pop(device.uid, None)
        if device.connection_script is None:
            self.remove(device)
            return

        machine = self.backing_machine(device)
        if machine is not None and self.find_by_name(machine.name) in (None, device):
            device.name = machine.name
        restore_device(device)
        device.is_dirty = False

    def replace_all(
        self, devices: Iterable[Device], machines: Iterable[RemoteMachine] = ()
    ) -> None:
        """Replace membership with reconciled devices.

        Unsaved devices that no remote machine backs survive unless a remote
        machine now uses their name. The selection is kept by name.
        """
        fresh = list(devices)
        self._machines = {machine.name: machine for machine in machines}
        remote_names = {device.name for device in fresh} | set(self._machines)

        for device in self._devices:
            if not device.is_dirty or device.id is not None:
                continue
            if device.name in remote_names:
                logger.info("Dropping unsaved device '%s': name now taken", device.name)
                continue
            fresh.append(device)

        selected_name = self._selected.name if self._selected else None
        self._devices = fresh
        live_uids = {device.uid for device in fresh}
        self._name_drafts = {
            uid: name for uid, name in self._name_drafts.items() if uid in live_uids
        }
        self._selected = self.find_by_name(selected_name) if selected_name else None
