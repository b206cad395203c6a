"""Domain enums and pure rules."""

from fleetdash.core.domain.gate import ACTION_SPECS, ActionSpec, permitted
from fleetdash.core.domain.instance import (
    FLEET_ACTIONS,
    INSTANCE_ACTIONS,
    Action,
    ContainerImage,
    ContainerStatus,
    InstanceStatus,
)
from fleetdash.core.domain.status import (
    ACTIVE_STATUSES,
    INACTIVE_STATUSES,
    STATUS_ORDER,
    StatusCategory,
    sort_instances,
    status_category,
    status_rank,
)

__all__ = [
    "Action",
    "ActionSpec",
    "ContainerImage",
    "ContainerStatus",
    "InstanceStatus",
    "StatusCategory",
    "ACTION_SPECS",
    "ACTIVE_STATUSES",
    "FLEET_ACTIONS",
    "INACTIVE_STATUSES",
    "INSTANCE_ACTIONS",
    "STATUS_ORDER",
    "permitted",
    "sort_instances",
    "status_category",
    "status_rank",
]
