"""Snapshot store - the latest full fleet snapshot.

Every push replaces the snapshot wholesale: no per-field merge, no diff,
no identity tracking across snapshots. Callers that care about
transitions compare two current() results themselves.
"""

import logging
import time
from collections.abc import Callable, Iterable

from fleetdash.app.metrics.collector import SNAPSHOT_INSTANCES, SNAPSHOTS_APPLIED_TOTAL
from fleetdash.core.domain.status import sort_instances
from fleetdash.core.models.instance import Instance

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Holds the current fleet snapshot and its sorted view."""

    def __init__(self) -> None:
        self._instances: tuple[Instance, ...] = ()
        self._sorted: tuple[Instance, ...] | None = ()
        self._version = 0
        self._replaced_at: float | None = None
        self._listeners: list[Callable[[], None]] = []

    @property
    def version(self) -> int:
        """Number of replacements applied so far."""
        return self._version

    @property
    def replaced_at(self) -> float | None:
        """time.time() of the last replacement, None before the first push."""
        return self._replaced_at

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def replace(self, instances: Iterable[Instance]) -> None:
        """Replace the whole snapshot."""
        self._instances = tuple(instances)
        self._sorted = None
        self._version += 1
        self._replaced_at = time.time()

        SNAPSHOTS_APPLIED_TOTAL.inc()
        SNAPSHOT_INSTANCES.set(len(self._instances))
        logger.debug("Snapshot replaced (version=%d, instances=%d)", self._version, len(self._instances))

        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Store listener failed")

    def current(self) -> tuple[Instance, ...]:
        """Instances sorted by status priority (stable)."""
        if self._sorted is None:
            self._sorted = sort_instances(self._instances)
        return self._sorted

    def raw(self) -> tuple[Instance, ...]:
        """Instances in delivery order."""
        return self._instances

    def get(self, instance_id: str) -> Instance | None:
        for instance in self._instances:
            if instance.id == instance_id:
                return instance
        return None

    def __len__(self) -> int:
        return len(self._instances)
