"""Instance domain enums.

Instance and container statuses are separate closed types. They share
some labels (Running, Stopped, ...) but carry no shared meaning: a
container can be Paused or NotFound, an instance can be PartiallyRunning.
"""

from enum import StrEnum


class InstanceStatus(StrEnum):
    """Aggregate status of an instance (computed server-side)."""

    RUNNING = "Running"
    STOPPED = "Stopped"
    RESTARTING = "Restarting"
    PAUSED = "Paused"
    EXITED = "Exited"
    DEAD = "Dead"
    UNKNOWN = "Unknown"
    PARTIALLY_RUNNING = "PartiallyRunning"


class ContainerStatus(StrEnum):
    """Status of a single container inside an instance.

    Member order matches the wire ordinal used by older servers that
    serialize the status as an integer.
    """

    RUNNING = "Running"
    STOPPED = "Stopped"
    RESTARTING = "Restarting"
    PAUSED = "Paused"
    EXITED = "Exited"
    DEAD = "Dead"
    UNKNOWN = "Unknown"
    NOT_FOUND = "NotFound"
    DELETED = "Deleted"


class ContainerImage(StrEnum):
    """Role of a container within its instance."""

    ADMINER = "adminer"
    WORDPRESS = "wordpress"
    NGINX = "nginx"
    MYSQL = "mysql"
    UNKNOWN = "unknown"


class Action(StrEnum):
    """Lifecycle commands accepted by the command API."""

    # Per-instance
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    DELETE = "delete"

    # Fleet-wide
    CREATE = "create"
    START_ALL = "start_all"
    STOP_ALL = "stop_all"
    RESTART_ALL = "restart_all"
    PURGE = "purge"

    @property
    def is_fleet(self) -> bool:
        return self in FLEET_ACTIONS


INSTANCE_ACTIONS: tuple[Action, ...] = (
    Action.START,
    Action.STOP,
    Action.RESTART,
    Action.DELETE,
)

FLEET_ACTIONS: tuple[Action, ...] = (
    Action.CREATE,
    Action.START_ALL,
    Action.STOP_ALL,
    Action.RESTART_ALL,
    Action.PURGE,
)
