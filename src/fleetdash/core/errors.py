"""Error handling module for fleetdash.

This module defines error codes and exception classes. No error in a
dashboard session is fatal: callers log, release locks and carry on with
the last known-good snapshot.

Usage:
    from fleetdash.core.errors import CommandFailedError

    raise CommandFailedError("start", instance_id="wpdev-1", status_code=500)
"""

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes."""

    COMMAND_FAILED = "COMMAND_FAILED"
    ACTION_IN_FLIGHT = "ACTION_IN_FLIGHT"
    ACTION_NOT_PERMITTED = "ACTION_NOT_PERMITTED"
    SNAPSHOT_MALFORMED = "SNAPSHOT_MALFORMED"
    CHANNEL_CLOSED = "CHANNEL_CLOSED"


class ErrorDetail(BaseModel):
    """Error detail containing code and message."""

    code: str
    message: str


class FleetDashError(Exception):
    """Base exception for fleetdash.

    Attributes:
        code: The error code from ErrorCode enum
        message: Human-readable error message
    """

    def __init__(self, code: ErrorCode, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(message)

    def to_detail(self) -> ErrorDetail:
        """Convert exception to ErrorDetail model (for operator display)."""
        return ErrorDetail(code=self.code.value, message=self.message)


class CommandFailedError(FleetDashError):
    """Command API returned non-2xx or the request never completed.

    status_code is None for transport failures (connect error, timeout).
    """

    def __init__(
        self,
        action: str,
        instance_id: str | None = None,
        status_code: int | None = None,
        message: str | None = None,
    ) -> None:
        self.action = action
        self.instance_id = instance_id
        self.status_code = status_code
        if message is None:
            target = f" on {instance_id}" if instance_id else ""
            if status_code is not None:
                message = f"Command {action}{target} failed with HTTP {status_code}"
            else:
                message = f"Command {action}{target} failed"
        super().__init__(ErrorCode.COMMAND_FAILED, message)


class ActionInFlightError(FleetDashError):
    """The (instance, action) lock is already held."""

    def __init__(self, instance_id: str, action: str) -> None:
        self.instance_id = instance_id
        self.action = action
        super().__init__(
            ErrorCode.ACTION_IN_FLIGHT,
            f"{action} already in flight for {instance_id}",
        )


class ActionNotPermittedError(FleetDashError):
    """The action gate refused the action for the current state."""

    def __init__(self, action: str, instance_id: str | None = None) -> None:
        self.action = action
        self.instance_id = instance_id
        target = f" for {instance_id}" if instance_id else ""
        super().__init__(
            ErrorCode.ACTION_NOT_PERMITTED,
            f"{action} is not permitted{target} right now",
        )


class SnapshotDecodeError(FleetDashError):
    """Inbound push payload could not be decoded into a snapshot."""

    def __init__(self, message: str = "Malformed snapshot payload") -> None:
        super().__init__(ErrorCode.SNAPSHOT_MALFORMED, message)


class ChannelClosedError(FleetDashError):
    """Attempted to send on a push channel that is not open."""

    def __init__(self, message: str = "Push channel is not open") -> None:
        super().__init__(ErrorCode.CHANNEL_CLOSED, message)
