"""Collaborators that ask the user or act on a freshly connected device."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class ConfirmationResult(str, Enum):
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"


class ConfirmationDialog(Protocol):
    async def ask(self, message: str) -> ConfirmationResult: ...


class SoftwareManager(Protocol):
    async def check_and_install(self, device_name: str) -> None: ...


class AutoConfirm:
    """Answers every question with a fixed result."""

    def __init__(self, result: ConfirmationResult = ConfirmationResult.ACCEPTED) -> None:
        self.result = result
        self.asked: list[str] = []

    async def ask(self, message: str) -> ConfirmationResult:
        self.asked.append(message)
        return self.result


class LoggingSoftwareManager:
    """Records the post-connect software check without installing anything."""

    def __init__(self) -> None:
        self.checked: list[str] = []

    async def check_and_install(self, device_name: str) -> None:
        logger.info("Checking software on '%s'", device_name)
        self.checked.append(device_name)
