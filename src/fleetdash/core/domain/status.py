"""Status classification: display priority and action-gating category.

Priority (lowest rank sorts first):
    Running < PartiallyRunning < Restarting < Stopped < Exited < Dead < Unknown

Category:
    active   - Running, Restarting, PartiallyRunning
    inactive - Stopped, Exited, Dead, Unknown
    None     - Paused (container-level status, not classified for the fleet)
"""

from collections.abc import Iterable
from enum import StrEnum
from typing import TYPE_CHECKING

from fleetdash.core.domain.instance import InstanceStatus

if TYPE_CHECKING:
    from fleetdash.core.models.instance import Instance


class StatusCategory(StrEnum):
    """Gating category of an instance status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


STATUS_ORDER: tuple[InstanceStatus, ...] = (
    InstanceStatus.RUNNING,
    InstanceStatus.PARTIALLY_RUNNING,
    InstanceStatus.RESTARTING,
    InstanceStatus.STOPPED,
    InstanceStatus.EXITED,
    InstanceStatus.DEAD,
    InstanceStatus.UNKNOWN,
)

_RANKS: dict[str, int] = {status.value: rank for rank, status in enumerate(STATUS_ORDER)}
_UNKNOWN_RANK = _RANKS[InstanceStatus.UNKNOWN]

ACTIVE_STATUSES = frozenset({
    InstanceStatus.RUNNING,
    InstanceStatus.RESTARTING,
    InstanceStatus.PARTIALLY_RUNNING,
})

INACTIVE_STATUSES = frozenset({
    InstanceStatus.STOPPED,
    InstanceStatus.EXITED,
    InstanceStatus.DEAD,
    InstanceStatus.UNKNOWN,
})


def status_rank(status: InstanceStatus | str) -> int:
    """Return the display rank of a status (unknown values rank as Unknown)."""
    return _RANKS.get(str(status), _UNKNOWN_RANK)


def status_category(status: InstanceStatus | str) -> StatusCategory | None:
    """Return the gating category, or None for unclassified statuses."""
    if status in ACTIVE_STATUSES:
        return StatusCategory.ACTIVE
    if status in INACTIVE_STATUSES:
        return StatusCategory.INACTIVE
    return None


def is_active(status: InstanceStatus | str) -> bool:
    return status_category(status) is StatusCategory.ACTIVE


def is_inactive(status: InstanceStatus | str) -> bool:
    return status_category(status) is StatusCategory.INACTIVE


def sort_instances(instances: Iterable["Instance"]) -> tuple["Instance", ...]:
    """Stable sort by status priority; equal statuses keep their order."""
    return tuple(sorted(instances, key=lambda instance: status_rank(instance.status)))
