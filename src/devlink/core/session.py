from __future__ import annotations

from devlink.config import Settings, data_dir_from_settings
from devlink.core.actions import ActionLifecycleBinder
from devlink.core.bus import AGENT_STATE, EventBus
from devlink.core.directory import LocalMachineDirectory
from devlink.core.discovery import DiscoveryService, ZeroconfDiscovery
from devlink.core.notifications import LoggingNotificationSink, NotificationSink
from devlink.core.orchestrator import ConnectionOrchestrator
from devlink.core.prompts import ConfirmationDialog, SoftwareManager
from devlink.core.store import DeviceStore
from devlink.models import AgentState, WorkspaceAgentEvent
from devlink.storage import Database


class Session:
    """Wires the bus, directory, store, orchestrator and action binder together."""

    def __init__(
        self,
        settings: Settings,
        *,
        notifications: NotificationSink | None = None,
        confirmation: ConfirmationDialog | None = None,
        software: SoftwareManager | None = None,
        discovery: DiscoveryService | None = None,
        database: Database | None = None,
    ) -> None:
        self.settings = settings
        self.bus = EventBus()
        self.database = database or Database(data_dir_from_settings(settings))
        self.directory = LocalMachineDirectory(
            self.database, self.bus, probe_timeout=settings.connection.probe_timeout
        )
        self.store = DeviceStore()
        self.notifications = notifications or LoggingNotificationSink()
        self.orchestrator = ConnectionOrchestrator(
            self.directory,
            self.store,
            self.bus,
            self.notifications,
            discovery=discovery or ZeroconfDiscovery(settings.discovery),
            confirmation=confirmation,
            software=software,
            verify_delay=settings.connection.verify_delay,
            connect_timeout=settings.connection.connect_timeout,
        )
        self.binder = ActionLifecycleBinder(
            self.bus, self.directory, debug_port=settings.actions.debug_port
        )

    async def open(self) -> None:
        self.orchestrator.start()
        self.binder.start()
        await self.bus.publish(AGENT_STATE, WorkspaceAgentEvent(state=AgentState.STARTED))
        if not self.orchestrator.subscribed:
            await self.orchestrator.refresh()

    async def close(self) -> None:
        await self.bus.publish(AGENT_STATE, WorkspaceAgentEvent(state=AgentState.STOPPED))
        self.orchestrator.stop()
        self.binder.stop()
        await self.directory.aclose()
        self.bus.close()

    async def __aenter__(self) -> Session:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
