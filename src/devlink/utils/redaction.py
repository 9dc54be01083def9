from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Redactor:
    enabled: bool = True
    _host_map: dict[str, int] = field(default_factory=dict)
    _host_counter: int = 0

    def redact_host(self, host: str) -> str:
        if not self.enabled or not host:
            return host
        parts = host.split(".")
        if len(parts) == 4 and all(part.isdigit() for part in parts):
            return f"x.x.x.{parts[3]}"
        counter = self._host_map.get(host)
        if counter is None:
            self._host_counter += 1
            counter = self._host_counter
            self._host_map[host] = counter
        return f"host-{counter:02d}"
