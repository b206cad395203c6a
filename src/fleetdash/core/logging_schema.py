"""Logging field schema - v1.0

Standard fields (added to all logs):
- schema_version: Log schema version
- service: Service name (fleetdash)
- event: Event type (command_failed, snapshot_applied, etc.)
- session_id: Dashboard session ID

High cardinality fields (OK in logs, NOT in metric labels):
- instance_id: Instance ID
"""

from enum import StrEnum


class LogEvent(StrEnum):
    """Standard log event types.

    Use these event types in the 'event' extra field for consistent
    log filtering and analysis.
    """

    # Session lifecycle
    SESSION_STARTED = "session_started"
    SESSION_STOPPED = "session_stopped"

    # Push channel
    CHANNEL_CONNECTING = "channel_connecting"
    CHANNEL_OPEN = "channel_open"
    CHANNEL_ERROR = "channel_error"
    CHANNEL_CLOSED = "channel_closed"
    CHANNEL_RECONNECT = "channel_reconnect"
    SNAPSHOT_REQUESTED = "snapshot_requested"
    SNAPSHOT_APPLIED = "snapshot_applied"
    SNAPSHOT_MALFORMED = "snapshot_malformed"

    # Commands
    COMMAND_STARTED = "command_started"
    COMMAND_SUCCESS = "command_success"
    COMMAND_FAILED = "command_failed"
    COMMAND_REJECTED = "command_rejected"

    # Locks
    LOCK_ACQUIRED = "lock_acquired"
    LOCK_RELEASED = "lock_released"
