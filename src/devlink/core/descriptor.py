"""Connection descriptor codec.

A descriptor is a JSON object persisted with the remote machine. Decoding is
partial: unknown keys are ignored and keys that are missing or not strings
leave the corresponding device field untouched.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from devlink.errors import DescriptorError
from devlink.models import Device

logger = logging.getLogger(__name__)

# descriptor key -> Device attribute
DESCRIPTOR_FIELDS: dict[str, str] = {
    "host": "host",
    "port": "port",
    "username": "username",
    "password": "password",
    "replicationFolder": "replication_folder",
}


@dataclass(frozen=True)
class DecodedDescriptor:
    host: str | None = None
    port: str | None = None
    username: str | None = None
    password: str | None = None
    replication_folder: str | None = None
    errors: tuple[str, ...] = field(default=())

    def present(self) -> dict[str, str]:
        """Return only the device attributes that were found."""
        values = {attr: getattr(self, attr) for attr in DESCRIPTOR_FIELDS.values()}
        return {attr: value for attr, value in values.items() if value is not None}


def encode_descriptor(device: Device) -> str:
    payload = {key: getattr(device, attr) for key, attr in DESCRIPTOR_FIELDS.items()}
    return json.dumps(payload)


def load_descriptor(script: str) -> dict[str, object]:
    try:
        data = json.loads(script)
    except json.JSONDecodeError as exc:
        raise DescriptorError(f"Unable to parse connection descriptor: {exc}") from exc
    if not isinstance(data, dict):
        raise DescriptorError(
            f"Connection descriptor must be an object, got {type(data).__name__}"
        )
    return data


def decode_descriptor(script: str | None) -> DecodedDescriptor:
    if script is None:
        return DecodedDescriptor()

    try:
        data = load_descriptor(script)
    except DescriptorError as exc:
        return DecodedDescriptor(errors=(exc.message,))

    values: dict[str, str] = {}
    errors: list[str] = []
    for key, attr in DESCRIPTOR_FIELDS.items():
        if key not in data:
            continue
        value = data[key]
        if isinstance(value, str):
            values[attr] = value
        else:
            errors.append(f"'{key}' is not a string")

    return DecodedDescriptor(**values, errors=tuple(errors))


def restore_device(device: Device) -> DecodedDescriptor:
    """Copy descriptor fields found in ``device.connection_script`` onto it."""
    decoded = decode_descriptor(device.connection_script)
    for error in decoded.errors:
        logger.warning("Device '%s': %s", device.name, error)
    for attr, value in decoded.present().items():
        setattr(device, attr, value)
    return decoded
