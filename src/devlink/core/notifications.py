"""User-facing status notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from rich.console import Console

logger = logging.getLogger(__name__)


class NotificationStatus(str, Enum):
    PROGRESS = "PROGRESS"
    SUCCESS = "SUCCESS"
    FAIL = "FAIL"


class DisplayMode(str, Enum):
    FLOAT = "FLOAT"
    NOT_EMERGE = "NOT_EMERGE"


@dataclass
class Notification:
    """Handle to an emitted notification; ``update`` changes it in place."""

    title: str
    status: NotificationStatus
    mode: DisplayMode = DisplayMode.FLOAT
    content: str | None = None
    _on_change: Callable[[Notification], None] | None = field(default=None, repr=False)

    def update(
        self,
        title: str | None = None,
        content: str | None = None,
        status: NotificationStatus | None = None,
    ) -> None:
        if title is not None:
            self.title = title
        if content is not None:
            self.content = content
        if status is not None:
            self.status = status
        if self._on_change is not None:
            self._on_change(self)


class NotificationSink(Protocol):
    def notify(
        self,
        message: str,
        status: NotificationStatus,
        mode: DisplayMode = DisplayMode.FLOAT,
    ) -> Notification: ...


class LoggingNotificationSink:
    """Keeps every notification it emits and logs each change."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(
        self,
        message: str,
        status: NotificationStatus,
        mode: DisplayMode = DisplayMode.FLOAT,
    ) -> Notification:
        notification = Notification(
            title=message, status=status, mode=mode, _on_change=self._changed
        )
        self.notifications.append(notification)
        self._changed(notification)
        return notification

    def latest(self) -> Notification | None:
        return self.notifications[-1] if self.notifications else None

    def _changed(self, notification: Notification) -> None:
        level = logging.ERROR if notification.status is NotificationStatus.FAIL else logging.INFO
        logger.log(level, "[%s] %s", notification.status.value, notification.title)


class ConsoleNotificationSink(LoggingNotificationSink):
    STYLES = {
        NotificationStatus.PROGRESS: "[dim]…[/dim]",
        NotificationStatus.SUCCESS: "[green]✓[/green]",
        NotificationStatus.FAIL: "[red]✗[/red]",
    }

    def __init__(self, console: Console | None = None) -> None:
        super().__init__()
        self.console = console or Console()

    def _changed(self, notification: Notification) -> None:
        super()._changed(notification)
        self.console.print(f"{self.STYLES[notification.status]} {notification.title}")
        if notification.content:
            self.console.print(f"  {notification.content}")
