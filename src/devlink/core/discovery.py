from __future__ import annotations

import asyncio
import logging
import threading
from typing import Protocol

from pydantic import BaseModel
from zeroconf import ServiceBrowser, ServiceInfo, ServiceListener, Zeroconf

from devlink.config import DiscoveryConfig

logger = logging.getLogger(__name__)


class DiscoveredDevice(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    ip_address: str
    name: str = ""
    port: int | None = None


class DiscoveryService(Protocol):
    async def get_devices(self) -> list[DiscoveredDevice]: ...


def _pick_ip(info: ServiceInfo) -> str | None:
    addresses = info.parsed_addresses()
    if not addresses:
        return None
    for address in addresses:
        if ":" not in address:
            return address
    return addresses[0]


def _strip_service_suffix(name: str, service_type: str) -> str:
    suffix = f".{service_type}"
    if name.endswith(suffix):
        return name[: -len(suffix)]
    return name.rstrip(".")


class HostListener(ServiceListener):
    def __init__(self, service_type: str, info_timeout: float) -> None:
        self._service_type = service_type
        self._info_timeout_ms = max(int(info_timeout * 1000), 1)
        self._lock = threading.Lock()
        self._found: dict[str, DiscoveredDevice] = {}

    def add_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        info = zc.get_service_info(type_, name, timeout=self._info_timeout_ms)
        if not info:
            return
        ip = _pick_ip(info)
        if ip is None:
            return
        device = DiscoveredDevice(
            ip_address=ip,
            name=_strip_service_suffix(name, self._service_type),
            port=info.port,
        )
        with self._lock:
            self._found[name] = device
        logger.debug("Discovered '%s' at %s via mDNS", device.name, device.ip_address)

    def update_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        self.add_service(zc, type_, name)

    def remove_service(self, _zc: Zeroconf, _type_: str, name: str) -> None:
        with self._lock:
            self._found.pop(name, None)

    def devices(self) -> list[DiscoveredDevice]:
        with self._lock:
            return list(self._found.values())


class ZeroconfDiscovery:
    """Browse mDNS for hosts advertising ``config.service_type``."""

    def __init__(self, config: DiscoveryConfig) -> None:
        self._config = config

    async def get_devices(self) -> list[DiscoveredDevice]:
        logger.debug(
            "Browsing %s (timeout=%.2fs)", self._config.service_type, self._config.timeout
        )
        zeroconf = Zeroconf()
        listener = HostListener(self._config.service_type, self._config.timeout)
        ServiceBrowser(zeroconf, self._config.service_type, listener)
        try:
            await asyncio.sleep(self._config.timeout)
        finally:
            await asyncio.to_thread(zeroconf.close)

        devices = listener.devices()
        devices.sort(key=lambda device: (device.ip_address, device.name))
        logger.debug("mDNS browse complete: found %d hosts", len(devices))
        return devices
