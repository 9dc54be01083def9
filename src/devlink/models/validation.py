from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DeviceValidation:
    name_invalid: bool = False
    name_duplicate: bool = False
    host_empty: bool = False
    port_empty: bool = False

    @property
    def valid(self) -> bool:
        return not (
            self.name_invalid or self.name_duplicate or self.host_empty or self.port_empty
        )

    def problems(self) -> list[str]:
        messages = []
        if self.name_invalid:
            messages.append("device name is empty or contains invalid characters")
        if self.name_duplicate:
            messages.append("device name is already in use")
        if self.host_empty:
            messages.append("host is empty")
        if self.port_empty:
            messages.append("port is empty")
        return messages
