from __future__ import annotations

import json
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from devlink.models import RemoteMachine

MACHINES_FILE = "machines.json"

_MACHINE_LIST = TypeAdapter(list[RemoteMachine])


class Database:
    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir
        self._machines_path = data_dir / MACHINES_FILE

    @property
    def path(self) -> Path:
        return self._data_dir

    @property
    def machines_path(self) -> Path:
        return self._machines_path

    def ensure_dirs(self) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)

    def load_machines(self) -> list[RemoteMachine]:
        if not self._machines_path.exists():
            return []

        try:
            with self._machines_path.open("r") as handle:
                data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ValueError(
                f"Invalid JSON in machines file: {self._machines_path}\n{exc}"
            ) from exc

        try:
            return _MACHINE_LIST.validate_python(data or [])
        except ValidationError as exc:
            raise ValueError(
                f"Invalid machines file: {self._machines_path}\n{exc}"
            ) from exc

    def save_machines(self, machines: list[RemoteMachine]) -> None:
        self.ensure_dirs()
        with self._machines_path.open("w") as handle:
            json.dump(_MACHINE_LIST.dump_python(machines, mode="json"), handle, indent=2)

    def get_machine(self, machine_id: str) -> RemoteMachine | None:
        for machine in self.load_machines():
            if machine.id == machine_id:
                return machine
        return None

    def upsert_machine(self, machine: RemoteMachine) -> None:
        machines = self.load_machines()
        for index, existing in enumerate(machines):
            if existing.id == machine.id:
                machines[index] = machine
                break
        else:
            machines.append(machine)
        self.save_machines(machines)

    def remove_machine(self, machine_id: str) -> bool:
        machines = self.load_machines()
        remaining = [m for m in machines if m.id != machine_id]
        if len(remaining) == len(machines):
            return False
        self.save_machines(remaining)
        return True

    def init(self, force: bool = False) -> bool:
        created = not self._machines_path.exists()
        self.ensure_dirs()
        if created or force:
            self.save_machines([])
        return created or force
