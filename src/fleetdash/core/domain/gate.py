"""Action gate - which lifecycle commands are legal right now.

Pure predicates consulted before dispatch and used to drive the
enabled/disabled state of operator controls.
"""

from dataclasses import dataclass

from fleetdash.core.domain.instance import Action, InstanceStatus
from fleetdash.core.domain.status import is_active, is_inactive


@dataclass(frozen=True)
class ActionSpec:
    """Operator-facing label and progress verb for an action."""

    action: Action
    label: str
    verb: str

    def text(self, loading: bool) -> str:
        return f"{self.verb}..." if loading else self.label


ACTION_SPECS: dict[Action, ActionSpec] = {
    spec.action: spec
    for spec in (
        ActionSpec(Action.START, "Start", "Starting"),
        ActionSpec(Action.STOP, "Stop", "Stopping"),
        ActionSpec(Action.RESTART, "Restart", "Restarting"),
        ActionSpec(Action.DELETE, "Delete", "Deleting"),
        ActionSpec(Action.CREATE, "Create Instance", "Creating"),
        ActionSpec(Action.START_ALL, "Start All", "Starting all"),
        ActionSpec(Action.STOP_ALL, "Stop All", "Stopping all"),
        ActionSpec(Action.RESTART_ALL, "Restart All", "Restarting all"),
        ActionSpec(Action.PURGE, "Purge All", "Purging"),
    )
}


def permitted(
    action: Action,
    status: InstanceStatus | str | None,
    locked: bool,
    fleet_busy: bool = False,
) -> bool:
    """Return True if `action` may be dispatched.

    Args:
        action: Command to check.
        status: Current instance status. Ignored for fleet actions.
        locked: Whether the (instance, action) lock is held. For fleet
            actions this is the fleet busy flag.
        fleet_busy: Whether a fleet-wide command is in flight. Fleet and
            per-instance commands are mutually exclusive.
    """
    if action.is_fleet:
        return not (locked or fleet_busy)

    if locked or fleet_busy:
        return False

    if action == Action.START:
        return not is_active(status or InstanceStatus.UNKNOWN)
    if action in (Action.STOP, Action.RESTART):
        return not is_inactive(status or InstanceStatus.UNKNOWN)
    # DELETE is legal from any status (cleanup of failed instances)
    return True
