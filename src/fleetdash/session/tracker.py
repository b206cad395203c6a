"""Mutation tracker - per (instance, action) in-flight flags.

Unlike a per-workspace asyncio.Lock, acquisition never waits: a held key
means "this command is already running" and the caller must not dispatch
it again. Fleet-wide commands are tracked under FLEET_SCOPE.

Usage:
    tracker = MutationTracker()

    with tracker.hold(instance_id, Action.START):
        await client.start(instance_id)
    # released here, whatever the outcome
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import NamedTuple

from fleetdash.app.metrics.collector import LOCKS_HELD
from fleetdash.core.domain.instance import Action
from fleetdash.core.errors import ActionInFlightError
from fleetdash.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)

# Reserved instance id for fleet-wide commands
FLEET_SCOPE = "*"


class LockKey(NamedTuple):
    instance_id: str
    action: Action


class MutationTracker:
    """In-flight flags keyed by LockKey.

    Listeners are called with no arguments after every state change so the
    presentation layer can re-derive its view.
    """

    def __init__(self) -> None:
        self._held: set[LockKey] = set()
        self._listeners: list[Callable[[], None]] = []

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Tracker listener failed")

    def begin(self, instance_id: str, action: Action) -> bool:
        """Mark (instance_id, action) as in flight.

        Returns False (and changes nothing) if it already was.
        """
        key = LockKey(instance_id, action)
        if key in self._held:
            return False
        self._held.add(key)
        LOCKS_HELD.set(len(self._held))
        logger.debug(
            "Lock acquired",
            extra={"event": LogEvent.LOCK_ACQUIRED, "instance_id": instance_id, "action": action.value},
        )
        self._notify()
        return True

    def end(self, instance_id: str, action: Action) -> None:
        """Release (instance_id, action). Releasing an unheld key is a no-op."""
        key = LockKey(instance_id, action)
        if key not in self._held:
            return
        self._held.discard(key)
        LOCKS_HELD.set(len(self._held))
        logger.debug(
            "Lock released",
            extra={"event": LogEvent.LOCK_RELEASED, "instance_id": instance_id, "action": action.value},
        )
        self._notify()

    @contextmanager
    def hold(self, instance_id: str, action: Action) -> Iterator[LockKey]:
        """Hold the lock for the duration of the block.

        Raises:
            ActionInFlightError: If the key is already held. The existing
                holder keeps its lock.
        """
        if not self.begin(instance_id, action):
            raise ActionInFlightError(instance_id, action.value)
        try:
            yield LockKey(instance_id, action)
        finally:
            self.end(instance_id, action)

    def is_locked(self, instance_id: str, action: Action) -> bool:
        return LockKey(instance_id, action) in self._held

    def is_instance_busy(self, instance_id: str) -> bool:
        """True iff any action lock for the instance is held."""
        return any(key.instance_id == instance_id for key in self._held)

    def is_fleet_busy(self) -> bool:
        """True while a fleet-wide command is in flight."""
        return self.is_instance_busy(FLEET_SCOPE)

    def is_anything_busy(self) -> bool:
        return bool(self._held)

    def held(self) -> frozenset[LockKey]:
        """Snapshot of currently held keys."""
        return frozenset(self._held)
