"""Derived UI state for operator controls.

Views are rebuilt from scratch from the current snapshot, the tracker and
the channel state; nothing here is stored between calls.
"""

from __future__ import annotations

from dataclasses import dataclass

from fleetdash.core.domain.gate import ACTION_SPECS, permitted
from fleetdash.core.domain.instance import FLEET_ACTIONS, INSTANCE_ACTIONS, Action
from fleetdash.core.models.instance import Instance
from fleetdash.session.tracker import FLEET_SCOPE, MutationTracker


@dataclass(frozen=True)
class ActionState:
    """One button: what it says and whether it can be pressed."""

    action: Action
    enabled: bool
    loading: bool
    label: str
    verb: str

    @property
    def text(self) -> str:
        return ACTION_SPECS[self.action].text(self.loading)


@dataclass(frozen=True)
class InstanceView:
    instance: Instance
    busy: bool
    actions: tuple[ActionState, ...]

    def action(self, action: Action) -> ActionState:
        for state in self.actions:
            if state.action == action:
                return state
        raise KeyError(action)


@dataclass(frozen=True)
class FleetView:
    """Everything the dashboard renders at one point in time."""

    instances: tuple[InstanceView, ...]
    fleet_actions: tuple[ActionState, ...]
    busy: bool
    channel_state: str
    version: int = 0

    def instance(self, instance_id: str) -> InstanceView | None:
        for view in self.instances:
            if view.instance.id == instance_id:
                return view
        return None

    def fleet_action(self, action: Action) -> ActionState:
        for state in self.fleet_actions:
            if state.action == action:
                return state
        raise KeyError(action)


def action_state(
    action: Action,
    tracker: MutationTracker,
    instance: Instance | None = None,
) -> ActionState:
    """Build the ActionState for one action, instance-scoped or fleet-wide.

    Raises:
        ValueError: If an instance action is built without an instance.
    """
    spec = ACTION_SPECS[action]
    fleet_busy = tracker.is_fleet_busy()
    if action.is_fleet:
        loading = tracker.is_locked(FLEET_SCOPE, action)
        enabled = permitted(action, None, fleet_busy)
    else:
        if instance is None:
            raise ValueError(f"{action} needs an instance")
        loading = tracker.is_locked(instance.id, action)
        enabled = permitted(action, instance.status, loading, fleet_busy)
    return ActionState(
        action=action,
        enabled=enabled,
        loading=loading,
        label=spec.label,
        verb=spec.verb,
    )


def build_view(
    instances: tuple[Instance, ...],
    tracker: MutationTracker,
    channel_state: str,
    version: int = 0,
) -> FleetView:
    """Derive the full FleetView. `instances` must already be sorted."""
    return FleetView(
        instances=tuple(
            InstanceView(
                instance=instance,
                busy=tracker.is_instance_busy(instance.id),
                actions=tuple(action_state(a, tracker, instance) for a in INSTANCE_ACTIONS),
            )
            for instance in instances
        ),
        fleet_actions=tuple(action_state(a, tracker) for a in FLEET_ACTIONS),
        busy=tracker.is_anything_busy(),
        channel_state=str(channel_state),
        version=version,
    )
