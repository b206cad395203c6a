"""Dashboard session - owns the store, tracker, push channel and client.

Reconciliation flow for one operator action:

    gate check -> lock -> dispatch -> (success) request snapshot -> release

The snapshot request is the only way a command's effect becomes visible:
the command response carries no state. Failures skip the request, record
the error and leave the last snapshot on screen.

Usage:
    async with DashboardSession.from_settings() as session:
        outcome = await session.run_action(Action.START, "wpdev-1")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from types import TracebackType
from typing import cast

import httpx

from fleetdash.api.client import ClientConfig, CommandClient
from fleetdash.app.config import ChannelConfig, Settings, get_settings
from fleetdash.app.logging import clear_session_context, set_session_id
from fleetdash.app.metrics.collector import COMMANDS_TOTAL
from fleetdash.core.domain import gate
from fleetdash.core.domain.instance import Action
from fleetdash.core.errors import ActionNotPermittedError, CommandFailedError, FleetDashError
from fleetdash.core.logging_schema import LogEvent
from fleetdash.core.retryable import classify_error, with_retry
from fleetdash.session.channel import Connector, PushChannel
from fleetdash.session.store import SnapshotStore
from fleetdash.session.tracker import FLEET_SCOPE, MutationTracker
from fleetdash.session.view import FleetView, build_view

logger = logging.getLogger(__name__)


class OutcomeStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failure"
    REJECTED = "rejected"


@dataclass(frozen=True)
class CommandOutcome:
    """Result of run_action."""

    action: Action
    instance_id: str | None
    status: OutcomeStatus
    error: FleetDashError | None = None
    snapshot_requested: bool = False

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS


class DashboardSession:
    """One live connection to the control plane.

    Store and tracker are per-session; nothing is shared at module level.
    """

    def __init__(
        self,
        client: CommandClient,
        channel_config: ChannelConfig,
        connector: Connector | None = None,
    ) -> None:
        self.store = SnapshotStore()
        self.tracker = MutationTracker()
        self.client = client
        self.channel = PushChannel(channel_config, self.store, connector)
        self.session_id: str | None = None
        self.last_error: FleetDashError | None = None

        self._error_listeners: list[Callable[[FleetDashError], None]] = []
        self._channel_task: asyncio.Task[None] | None = None
        self._closed = False
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        connector: Connector | None = None,
    ) -> DashboardSession:
        """Build a session from application settings."""
        settings = settings or get_settings()
        client = CommandClient(
            ClientConfig(
                base_url=settings.api.base_url,
                api_key=settings.api.api_key,
                timeout=settings.api.timeout,
            ),
            transport=transport,
        )
        return cls(client, settings.channel, connector)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def __aenter__(self) -> DashboardSession:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def channel_running(self) -> bool:
        """False once the push channel gave up or was closed."""
        return self._channel_task is not None and not self._channel_task.done()

    def start(self) -> None:
        """Start the push channel in the background."""
        if self._channel_task is not None:
            return
        self.session_id = set_session_id()
        logger.info("Dashboard session started", extra={"event": LogEvent.SESSION_STARTED})
        self._channel_task = asyncio.create_task(self.channel.run(), name="fleetdash-channel")

    async def close(self) -> None:
        """Close the channel, let outstanding commands finish, then release
        the HTTP client. Idempotent."""
        if self._closed:
            return
        self._closed = True
        await self.channel.close()
        if self._channel_task is not None:
            await self._channel_task
            self._channel_task = None
        await self._idle.wait()
        await self.client.close()
        logger.info("Dashboard session stopped", extra={"event": LogEvent.SESSION_STOPPED})
        clear_session_context()

    async def wait_for_snapshot(self, timeout: float | None = None) -> bool:
        """Wait until at least one snapshot has been applied."""
        if self.store.version:
            return True
        ready = asyncio.Event()
        remove = self.store.add_listener(ready.set)
        try:
            await asyncio.wait_for(ready.wait(), timeout)
        except TimeoutError:
            return False
        finally:
            remove()
        return True

    async def refresh(self) -> None:
        """Replace the snapshot from the HTTP listing endpoint.

        Fallback for when the push channel is unavailable. Read-only, so
        transient failures are retried.
        """
        instances = await with_retry(self.client.list_instances)
        self.store.replace(instances)

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_error_listener(self, listener: Callable[[FleetDashError], None]) -> Callable[[], None]:
        """Register a listener for command failures. Returns a remover."""
        self._error_listeners.append(listener)

        def remove() -> None:
            if listener in self._error_listeners:
                self._error_listeners.remove(listener)

        return remove

    def add_change_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call listener whenever the view may have changed. Returns a remover."""
        removers = [
            self.store.add_listener(listener),
            self.tracker.add_listener(listener),
            self.channel.add_listener(lambda _state: listener()),
        ]

        def remove() -> None:
            for remover in removers:
                remover()

        return remove

    def _record_error(self, error: FleetDashError) -> None:
        self.last_error = error
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("Error listener failed")

    # =========================================================================
    # Gate
    # =========================================================================

    def permitted(self, action: Action, instance_id: str | None = None) -> bool:
        """Whether the gate allows `action` given the current snapshot and locks."""
        fleet_busy = self.tracker.is_fleet_busy()
        if action.is_fleet:
            return gate.permitted(action, None, fleet_busy)
        if instance_id is None:
            return False
        instance = self.store.get(instance_id)
        return gate.permitted(
            action,
            instance.status if instance else None,
            self.tracker.is_locked(instance_id, action),
            fleet_busy,
        )

    def require(self, action: Action, instance_id: str | None = None) -> None:
        """Raise ActionNotPermittedError unless the gate allows `action`."""
        if not self.permitted(action, instance_id):
            raise ActionNotPermittedError(action.value, instance_id)

    def view(self) -> FleetView:
        return build_view(
            self.store.current(),
            self.tracker,
            self.channel.state,
            self.store.version,
        )

    # =========================================================================
    # Commands
    # =========================================================================

    async def run_action(self, action: Action, instance_id: str | None = None) -> CommandOutcome:
        """Run one lifecycle command through gate, lock and dispatch.

        Raises:
            ValueError: If instance_id is missing for an instance action or
                given for a fleet action.
        """
        CommandClient.command_path(action, instance_id)
        log_extra = {"action": action.value, "instance_id": instance_id}

        if not self.permitted(action, instance_id):
            COMMANDS_TOTAL.labels(action=action.value, result=OutcomeStatus.REJECTED.value).inc()
            logger.info(
                "Command refused by gate: %s",
                action,
                extra={"event": LogEvent.COMMAND_REJECTED, **log_extra},
            )
            return CommandOutcome(action, instance_id, OutcomeStatus.REJECTED)

        scope = FLEET_SCOPE if action.is_fleet else cast(str, instance_id)

        self._in_flight += 1
        self._idle.clear()
        try:
            with self.tracker.hold(scope, action):
                logger.info(
                    "Command started: %s",
                    action,
                    extra={"event": LogEvent.COMMAND_STARTED, **log_extra},
                )
                try:
                    await self.client.dispatch(action, instance_id)
                except CommandFailedError as exc:
                    COMMANDS_TOTAL.labels(action=action.value, result=OutcomeStatus.FAILED.value).inc()
                    logger.warning(
                        "Command failed: %s",
                        exc.message,
                        extra={
                            "event": LogEvent.COMMAND_FAILED,
                            "status_code": exc.status_code,
                            "error_class": classify_error(exc),
                            **log_extra,
                        },
                    )
                    self._record_error(exc)
                    return CommandOutcome(action, instance_id, OutcomeStatus.FAILED, error=exc)

                COMMANDS_TOTAL.labels(action=action.value, result=OutcomeStatus.SUCCESS.value).inc()
                # After teardown the result is a no-op
                requested = False
                if not self._closed:
                    requested = await self.channel.request_snapshot()
                return CommandOutcome(
                    action, instance_id, OutcomeStatus.SUCCESS, snapshot_requested=requested
                )
        finally:
            self._in_flight -= 1
            if not self._in_flight:
                self._idle.set()
