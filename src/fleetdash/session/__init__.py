"""Live dashboard session: snapshot store, mutation tracker, push channel."""

from fleetdash.session.channel import ChannelState, PushChannel
from fleetdash.session.controller import CommandOutcome, DashboardSession, OutcomeStatus
from fleetdash.session.store import SnapshotStore
from fleetdash.session.tracker import FLEET_SCOPE, LockKey, MutationTracker
from fleetdash.session.view import ActionState, FleetView, InstanceView, build_view

__all__ = [
    "ActionState",
    "ChannelState",
    "CommandOutcome",
    "DashboardSession",
    "FLEET_SCOPE",
    "FleetView",
    "InstanceView",
    "LockKey",
    "MutationTracker",
    "OutcomeStatus",
    "PushChannel",
    "SnapshotStore",
    "build_view",
]
