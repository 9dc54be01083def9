"""Tests for Database class."""

import pytest

from devlink.models import MachineStatus, RemoteMachine
from devlink.storage import Database


def _machine(machine_id: str, status: MachineStatus = MachineStatus.RUNNING) -> RemoteMachine:
    return RemoteMachine(id=machine_id, name=f"dev-{machine_id}", status=status)


def test_init_creates_empty_machines_file(tmp_path):
    db = Database(tmp_path / "data")

    assert db.init() is True
    assert db.machines_path.exists()
    assert db.load_machines() == []
    assert db.init() is False
    assert db.init(force=True) is True


def test_missing_file_loads_empty(tmp_path):
    assert Database(tmp_path).load_machines() == []


def test_upsert_replaces_in_place(tmp_path):
    db = Database(tmp_path)
    db.upsert_machine(_machine("a"))
    db.upsert_machine(_machine("b"))
    db.upsert_machine(_machine("a", MachineStatus.STOPPED))

    machines = db.load_machines()
    assert [m.id for m in machines] == ["a", "b"]
    assert machines[0].status is MachineStatus.STOPPED
    assert db.get_machine("b") == _machine("b")
    assert db.get_machine("c") is None


def test_remove_machine(tmp_path):
    db = Database(tmp_path)
    db.upsert_machine(_machine("a"))

    assert db.remove_machine("a") is True
    assert db.remove_machine("a") is False
    assert db.load_machines() == []


def test_invalid_json_raises(tmp_path):
    db = Database(tmp_path)
    db.machines_path.write_text("{broken")
    with pytest.raises(ValueError, match="Invalid JSON"):
        db.load_machines()


def test_invalid_record_raises(tmp_path):
    db = Database(tmp_path)
    db.machines_path.write_text('[{"id": "a"}]')
    with pytest.raises(ValueError, match="Invalid machines file"):
        db.load_machines()
