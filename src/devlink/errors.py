"""Error codes and exceptions for devlink."""

from __future__ import annotations

from enum import Enum, auto


class ErrorCode(Enum):
    SUBSCRIPTION_FAILED = auto()
    DIRECTORY_FAILED = auto()
    VALIDATION_FAILED = auto()
    CONNECTION_PENDING = auto()
    DESCRIPTOR_INVALID = auto()


class DevlinkError(Exception):
    """Base exception for devlink errors."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"[{code.name}] {message}")


class SubscriptionError(DevlinkError):
    """Raised when an event channel cannot be subscribed to."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.SUBSCRIPTION_FAILED, message)


class MachineDirectoryError(DevlinkError):
    """Raised when the machine directory rejects or fails a request.

    ``message`` is the remote-supplied reason and may be empty.
    """

    def __init__(self, message: str = "") -> None:
        super().__init__(ErrorCode.DIRECTORY_FAILED, message)


class DeviceValidationError(DevlinkError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.VALIDATION_FAILED, message)


class ConnectionInProgressError(DevlinkError):
    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(
            ErrorCode.CONNECTION_PENDING, f"Connection to '{target}' is in progress"
        )


class DescriptorError(DevlinkError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.DESCRIPTOR_INVALID, message)
