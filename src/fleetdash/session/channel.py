"""Push channel - WebSocket that delivers full fleet snapshots.

State machine:

    DISCONNECTED -> CONNECTING -> OPEN -> CLOSED   (teardown or server close)
                                       -> ERRORED  (transport error)

Entering OPEN immediately sends the request command so the first snapshot
does not wait for the next server-side change. Each inbound text message
is a JSON array of instances and replaces the store; anything else is
logged and dropped with the previous snapshot left untouched.

Reconnection (CLOSED/ERRORED -> CONNECTING) uses bounded exponential
backoff and re-requests the snapshot on every reconnect. The attempt
count resets only once a reconnected channel has applied a snapshot, so a
server that accepts and immediately drops the connection still runs out
of attempts. reconnect_max_attempts=0 leaves the channel down after the first failure.
An explicit close() never reconnects.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import StrEnum
from typing import Protocol

import websockets
from pydantic import ValidationError

from fleetdash.app.config import ChannelConfig
from fleetdash.app.metrics.collector import (
    CHANNEL_ERRORS_TOTAL,
    CHANNEL_RECONNECTS_TOTAL,
    CHANNEL_STATE,
    SNAPSHOTS_MALFORMED_TOTAL,
)
from fleetdash.core.errors import ChannelClosedError, SnapshotDecodeError
from fleetdash.core.logging_schema import LogEvent
from fleetdash.core.models.instance import parse_snapshot
from fleetdash.core.retryable import backoff_delay, classify_error
from fleetdash.session.store import SnapshotStore

logger = logging.getLogger(__name__)


class ChannelState(StrEnum):
    """Push channel connection state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    ERRORED = "errored"


_STATE_GAUGE = {
    ChannelState.DISCONNECTED: 0,
    ChannelState.CONNECTING: 1,
    ChannelState.OPEN: 2,
    ChannelState.CLOSED: 3,
    ChannelState.ERRORED: 4,
}


class Connection(Protocol):
    """Subset of websockets' ClientConnection used by the channel."""

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


Connector = Callable[[], Awaitable[Connection]]


class PushChannel:
    """Owns the push connection and feeds the snapshot store.

    A single reader applies messages one at a time, in arrival order.
    """

    def __init__(
        self,
        config: ChannelConfig,
        store: SnapshotStore,
        connector: Connector | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._connector = connector or self._connect_websocket
        self._conn: Connection | None = None
        self._state = ChannelState.DISCONNECTED
        self._closing = False
        self._closed = asyncio.Event()
        self._opened = asyncio.Event()
        self._listeners: list[Callable[[ChannelState], None]] = []
        self.last_error: BaseException | None = None
        CHANNEL_STATE.set(_STATE_GAUGE[self._state])

    async def _connect_websocket(self) -> Connection:
        return await websockets.connect(
            self._config.url,
            ping_interval=self._config.ping_interval,
            ping_timeout=self._config.ping_timeout,
            open_timeout=self._config.open_timeout,
            max_size=self._config.max_size,
        )

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == ChannelState.OPEN

    def add_listener(self, listener: Callable[[ChannelState], None]) -> Callable[[], None]:
        """Register a state-change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _set_state(self, state: ChannelState) -> None:
        if state == self._state:
            return
        previous, self._state = self._state, state
        CHANNEL_STATE.set(_STATE_GAUGE[state])
        if state == ChannelState.OPEN:
            self._opened.set()
        else:
            self._opened.clear()
        logger.debug("Channel %s -> %s", previous, state)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Channel listener failed")

    async def wait_open(self, timeout: float | None = None) -> bool:
        """Wait until the channel is OPEN. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._opened.wait(), timeout)
        except TimeoutError:
            return False
        return True

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self) -> bool:
        """Open the connection once and request the first snapshot.

        Returns True when the channel reached OPEN.
        """
        if self._closing:
            return False
        if self._state in (ChannelState.CONNECTING, ChannelState.OPEN):
            return self._state == ChannelState.OPEN

        self._set_state(ChannelState.CONNECTING)
        logger.info(
            "Connecting to push channel",
            extra={"event": LogEvent.CHANNEL_CONNECTING, "url": self._config.url},
        )
        try:
            conn = await self._connector()
        except Exception as exc:
            self._on_transport_error(exc, "Push channel connect failed")
            return False

        if self._closing:
            # close() raced the handshake
            await conn.close()
            return False

        self._conn = conn
        self._set_state(ChannelState.OPEN)
        logger.info("Push channel open", extra={"event": LogEvent.CHANNEL_OPEN})
        await self.request_snapshot()
        return True

    async def close(self) -> None:
        """Tear down the channel. Safe to call any number of times."""
        if self._closing and self._conn is None:
            return
        self._closing = True
        self._closed.set()
        conn, self._conn = self._conn, None
        if conn is not None:
            try:
                await conn.close()
            except Exception as exc:
                logger.warning("Error closing push channel: %s", exc)
        if self._state != ChannelState.CLOSED:
            self._set_state(ChannelState.CLOSED)
            logger.info(
                "Push channel closed",
                extra={"event": LogEvent.CHANNEL_CLOSED, "initiator": "client"},
            )

    def _on_transport_error(self, exc: BaseException, message: str) -> None:
        error_class = classify_error(exc)
        self.last_error = exc
        self._conn = None
        CHANNEL_ERRORS_TOTAL.labels(error_class=error_class).inc()
        logger.warning(
            "%s: %s",
            message,
            exc,
            extra={"event": LogEvent.CHANNEL_ERROR, "error_class": error_class},
        )
        if not self._closing:
            self._set_state(ChannelState.ERRORED)

    # =========================================================================
    # Messages
    # =========================================================================

    async def send(self, message: str) -> None:
        """Send a raw text command.

        Raises:
            ChannelClosedError: If the channel is not OPEN.
        """
        conn = self._conn
        if conn is None or self._state != ChannelState.OPEN:
            raise ChannelClosedError()
        await conn.send(message)

    async def request_snapshot(self) -> bool:
        """Ask the server for the current fleet snapshot.

        Returns False (after logging) if the channel is not open or the send
        failed; the next push or reconnect will refresh the snapshot.
        """
        try:
            await self.send(self._config.request_command)
        except ChannelClosedError:
            logger.info(
                "Snapshot request skipped, channel is %s",
                self._state,
                extra={"event": LogEvent.SNAPSHOT_REQUESTED, "sent": False},
            )
            return False
        except websockets.ConnectionClosed as exc:
            logger.warning(
                "Snapshot request failed: %s",
                exc,
                extra={"event": LogEvent.SNAPSHOT_REQUESTED, "sent": False},
            )
            return False
        logger.debug(
            "Snapshot requested",
            extra={"event": LogEvent.SNAPSHOT_REQUESTED, "sent": True},
        )
        return True

    def decode(self, payload: str | bytes) -> tuple:
        """Decode a push payload.

        Raises:
            SnapshotDecodeError: If the payload is not a JSON array of
                instances. The server reports inspection failures as a bare
                JSON string, which lands here too.
        """
        try:
            return parse_snapshot(payload)
        except ValidationError as exc:
            head = payload[:1] if isinstance(payload, str) else payload[:1].decode(errors="replace")
            if head == '"':
                raise SnapshotDecodeError(f"Server reported an inspection error: {payload!r:.200}") from exc
            raise SnapshotDecodeError(
                f"Malformed snapshot ({exc.error_count()} errors): {exc.errors()[0]['msg']}"
            ) from exc

    def handle_message(self, payload: str | bytes) -> bool:
        """Apply one inbound message. Returns True if the store was replaced."""
        try:
            instances = self.decode(payload)
        except SnapshotDecodeError as exc:
            SNAPSHOTS_MALFORMED_TOTAL.inc()
            logger.warning(
                "Discarding push message: %s",
                exc.message,
                extra={"event": LogEvent.SNAPSHOT_MALFORMED, "size": len(payload)},
            )
            return False

        self._store.replace(instances)
        logger.info(
            "Snapshot applied",
            extra={
                "event": LogEvent.SNAPSHOT_APPLIED,
                "instances": len(instances),
                "version": self._store.version,
            },
        )
        return True

    async def _pump(self, conn: Connection) -> None:
        """Read messages until the connection ends."""
        try:
            async for message in conn:
                self.handle_message(message)
        except websockets.ConnectionClosedOK:
            pass
        except Exception as exc:
            if not self._closing:
                self._on_transport_error(exc, "Push channel error")
            return

        if not self._closing:
            self._conn = None
            self._set_state(ChannelState.CLOSED)
            logger.info(
                "Push channel closed by server",
                extra={"event": LogEvent.CHANNEL_CLOSED, "initiator": "server"},
            )

    # =========================================================================
    # Main loop
    # =========================================================================

    async def _sleep_unless_closed(self, delay: float) -> bool:
        """Sleep for delay seconds. Returns False if close() interrupted it."""
        try:
            await asyncio.wait_for(self._closed.wait(), delay)
        except TimeoutError:
            return True
        return False

    async def run(self) -> None:
        """Connect, apply pushes, and reconnect until closed or out of attempts."""
        attempt = 0
        max_attempts = self._config.reconnect_max_attempts

        while not self._closing:
            if await self.connect():
                applied = self._store.version
                conn = self._conn
                if conn is not None:
                    await self._pump(conn)
                # Only a connection that delivered a snapshot resets the count
                if self._store.version > applied:
                    attempt = 0

            if self._closing:
                break

            if self.last_error is not None and classify_error(self.last_error) == "permanent":
                logger.error(
                    "Push channel failed permanently, not reconnecting: %s",
                    self.last_error,
                    extra={"event": LogEvent.CHANNEL_ERROR, "error_class": "permanent"},
                )
                break

            if attempt >= max_attempts:
                if max_attempts:
                    logger.error(
                        "Push channel gave up after %d reconnect attempts",
                        attempt,
                        extra={"event": LogEvent.CHANNEL_RECONNECT, "attempt": attempt},
                    )
                break

            delay = backoff_delay(
                attempt,
                self._config.reconnect_base_delay,
                self._config.reconnect_max_delay,
            )
            attempt += 1
            CHANNEL_RECONNECTS_TOTAL.inc()
            logger.info(
                "Reconnecting push channel in %.1fs (attempt %d/%d)",
                delay,
                attempt,
                max_attempts,
                extra={"event": LogEvent.CHANNEL_RECONNECT, "attempt": attempt, "delay": delay},
            )
            if not await self._sleep_unless_closed(delay):
                break
            self.last_error = None
