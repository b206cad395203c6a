"""End-to-end reconciliation scenarios for DashboardSession.

HTTP goes through httpx.MockTransport, the push channel through
FakeConnection.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from fleetdash.api.client import ClientConfig, CommandClient
from fleetdash.app.config import ChannelConfig
from fleetdash.core.domain.instance import FLEET_ACTIONS, Action
from fleetdash.core.errors import ActionNotPermittedError, CommandFailedError
from fleetdash.session.channel import ChannelState
from fleetdash.session.controller import DashboardSession, OutcomeStatus
from tests.unit.fakes import FakeConnection, instance_payload

WaitUntil = Callable[..., Awaitable[None]]


def push(conn: FakeConnection, *instances: dict) -> None:
    conn.push(json.dumps(list(instances)))


class BlockingHandler:
    """MockTransport handler that holds POSTs until release() is called."""

    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.requests: list[httpx.Request] = []
        self.entered = asyncio.Event()
        self._release = asyncio.Event()

    def release(self) -> None:
        self._release.set()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.entered.set()
        await self._release.wait()
        return httpx.Response(self.status)


def make_session(
    handler: Callable, channel_config: ChannelConfig, connector: AsyncMock
) -> DashboardSession:
    client = CommandClient(
        ClientConfig(base_url="http://test/api"),
        transport=httpx.MockTransport(handler),
    )
    return DashboardSession(client, channel_config, connector)


async def open_with(
    session: DashboardSession,
    conn: FakeConnection,
    wait_until: WaitUntil,
    *instances: dict,
) -> None:
    """Start the session and apply one snapshot."""
    session.start()
    await wait_until(lambda: conn.sent == ["request_inspect"])
    version = session.store.version
    push(conn, *instances)
    await wait_until(lambda: session.store.version > version)


class TestStartScenario:
    async def test_start_stopped_instance(
        self,
        channel_config: ChannelConfig,
        connector: AsyncMock,
        fake_conn: FakeConnection,
        wait_until: WaitUntil,
    ) -> None:
        """Stopped -> start accepted -> snapshot requested -> Running pushed."""
        handler = BlockingHandler()
        session = make_session(handler, channel_config, connector)
        async with session:
            await open_with(session, fake_conn, wait_until, instance_payload("a", "Stopped"))
            assert session.view().instance("a").action(Action.START).enabled

            task = asyncio.create_task(session.run_action(Action.START, "a"))
            await handler.entered.wait()

            # In flight: button shows progress and is disabled
            start = session.view().instance("a").action(Action.START)
            assert start.loading and not start.enabled
            assert start.text == "Starting..."
            assert session.view().busy

            handler.release()
            outcome = await task

            assert outcome.status == OutcomeStatus.SUCCESS
            assert outcome.snapshot_requested is True
            assert fake_conn.sent == ["request_inspect", "request_inspect"]
            assert handler.requests[0].method == "POST"
            assert handler.requests[0].url.path == "/api/instances/a/start"
            assert not session.tracker.is_anything_busy()

            push(fake_conn, instance_payload("a", "Running"))
            await wait_until(lambda: session.store.get("a").status == "Running")

            view = session.view().instance("a")
            assert not view.action(Action.START).enabled
            assert view.action(Action.STOP).enabled
            assert view.action(Action.START).text == "Start"

    async def test_start_refused_when_running(
        self,
        session: DashboardSession,
        fake_conn: FakeConnection,
        wait_until: WaitUntil,
        http_calls: list[httpx.Request],
    ) -> None:
        async with session:
            await open_with(session, fake_conn, wait_until, instance_payload("a", "Running"))

            outcome = await session.run_action(Action.START, "a")

        assert outcome.status == OutcomeStatus.REJECTED
        assert http_calls == []

    async def test_duplicate_dispatch_refused(
        self,
        channel_config: ChannelConfig,
        connector: AsyncMock,
        fake_conn: FakeConnection,
        wait_until: WaitUntil,
    ) -> None:
        """A second stop while the first is in flight never reaches the API."""
        handler = BlockingHandler()
        session = make_session(handler, channel_config, connector)
        async with session:
            await open_with(session, fake_conn, wait_until, instance_payload("a", "Running"))

            first = asyncio.create_task(session.run_action(Action.STOP, "a"))
            await handler.entered.wait()
            second = await session.run_action(Action.STOP, "a")
            handler.release()

            assert second.status == OutcomeStatus.REJECTED
            assert (await first).ok
            assert len(handler.requests) == 1


class TestFailedCommand:
    async def test_delete_http_500(
        self,
        session: DashboardSession,
        fake_conn: FakeConnection,
        wait_until: WaitUntil,
        http_status: dict[str, int],
    ) -> None:
        """Failure: error recorded, no snapshot request, lock released."""
        http_status["/api/instances/a/delete"] = 500
        errors: list = []
        async with session:
            session.add_error_listener(errors.append)
            await open_with(session, fake_conn, wait_until, instance_payload("a", "Running"))
            before = session.store.current()

            outcome = await session.run_action(Action.DELETE, "a")

            assert outcome.status == OutcomeStatus.FAILED
            assert isinstance(outcome.error, CommandFailedError)
            assert outcome.error.status_code == 500
            assert session.last_error is outcome.error
            assert errors == [outcome.error]
            assert fake_conn.sent == ["request_inspect"]
            assert not session.tracker.is_locked("a", Action.DELETE)
            assert session.store.current() is before
            assert session.view().instance("a").action(Action.DELETE).enabled

    async def test_transport_failure(
        self,
        channel_config: ChannelConfig,
        connector: AsyncMock,
        fake_conn: FakeConnection,
        wait_until: WaitUntil,
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        session = make_session(handler, channel_config, connector)
        async with session:
            await open_with(session, fake_conn, wait_until, instance_payload("a", "Stopped"))
            outcome = await session.run_action(Action.START, "a")

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error.status_code is None
        assert not session.tracker.is_anything_busy()

    async def test_failing_error_listener_is_contained(
        self,
        session: DashboardSession,
        fake_conn: FakeConnection,
        wait_until: WaitUntil,
        http_status: dict[str, int],
    ) -> None:
        http_status["/api/instances/a/stop"] = 502
        session.add_error_listener(MagicMock(side_effect=RuntimeError("listener bug")))
        async with session:
            await open_with(session, fake_conn, wait_until, instance_payload("a", "Running"))
            outcome = await session.run_action(Action.STOP, "a")

        assert outcome.status == OutcomeStatus.FAILED


class TestMalformedPush:
    async def test_view_keeps_last_snapshot(
        self, session: DashboardSession, fake_conn: FakeConnection, wait_until: WaitUntil
    ) -> None:
        async with session:
            await open_with(
                session,
                fake_conn,
                wait_until,
                instance_payload("a", "Stopped"),
                instance_payload("b", "Running"),
            )
            before = session.view()

            fake_conn.push("{not json")
            fake_conn.push('"Failed to inspect instances"')
            fake_conn.push(json.dumps([instance_payload("c", "Dead")]))
            await wait_until(lambda: session.store.get("c") is not None)

            assert before.version == 1
            assert [v.instance.id for v in before.instances] == ["b", "a"]
            assert session.store.version == 2
            assert session.channel.state == ChannelState.OPEN


class TestFleetBusy:
    async def test_purge_disables_everything(
        self,
        channel_config: ChannelConfig,
        connector: AsyncMock,
        fake_conn: FakeConnection,
        wait_until: WaitUntil,
    ) -> None:
        handler = BlockingHandler()
        session = make_session(handler, channel_config, connector)
        async with session:
            await open_with(
                session,
                fake_conn,
                wait_until,
                instance_payload("a", "Stopped"),
                instance_payload("b", "Running"),
            )

            purge = asyncio.create_task(session.run_action(Action.PURGE))
            await handler.entered.wait()

            view = session.view()
            assert view.busy
            assert view.fleet_action(Action.PURGE).text == "Purging..."
            for action in FLEET_ACTIONS:
                assert not view.fleet_action(action).enabled
            for instance_view in view.instances:
                assert not any(state.enabled for state in instance_view.actions)

            refused = await session.run_action(Action.START, "a")
            assert refused.status == OutcomeStatus.REJECTED
            assert len(handler.requests) == 1

            handler.release()
            assert (await purge).ok
            assert handler.requests[0].url.path == "/api/instances/purge"

            view = session.view()
            assert not view.busy
            assert all(state.enabled for state in view.fleet_actions)
            assert view.instance("a").action(Action.START).enabled


class TestGateHelpers:
    async def test_require(self, session: DashboardSession) -> None:
        with pytest.raises(ActionNotPermittedError):
            session.require(Action.STOP, "missing")
        session.require(Action.CREATE)

    async def test_permitted_instance_action_needs_id(self, session: DashboardSession) -> None:
        assert session.permitted(Action.START) is False

    async def test_run_action_validates_scope(self, session: DashboardSession) -> None:
        with pytest.raises(ValueError):
            await session.run_action(Action.START)
        with pytest.raises(ValueError):
            await session.run_action(Action.PURGE, "a")


class TestTeardown:
    async def test_close_lets_outstanding_command_finish(
        self,
        channel_config: ChannelConfig,
        connector: AsyncMock,
        fake_conn: FakeConnection,
        wait_until: WaitUntil,
    ) -> None:
        """A command completing after teardown skips the snapshot request."""
        handler = BlockingHandler()
        session = make_session(handler, channel_config, connector)
        await open_with(session, fake_conn, wait_until, instance_payload("a", "Stopped"))

        command = asyncio.create_task(session.run_action(Action.START, "a"))
        await handler.entered.wait()
        closing = asyncio.create_task(session.close())
        await wait_until(lambda: session.channel.state == ChannelState.CLOSED)

        assert not closing.done()
        handler.release()
        outcome = await command
        await closing

        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.snapshot_requested is False
        assert fake_conn.sent == ["request_inspect"]
        assert session.closed

    async def test_close_idempotent(self, session: DashboardSession) -> None:
        session.start()
        await session.close()
        await session.close()
        assert session.channel.state == ChannelState.CLOSED


class TestRefresh:
    async def test_refresh_from_http(self, channel_config: ChannelConfig, connector: AsyncMock) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/api/instances"
            return httpx.Response(
                200,
                json={
                    "a": instance_payload("a", "Exited"),
                    "b": instance_payload("b", "Running"),
                },
            )

        session = make_session(handler, channel_config, connector)
        await session.refresh()

        assert [i.id for i in session.store.current()] == ["b", "a"]
        await session.client.close()

    async def test_malformed_body_not_retried(
        self, channel_config: ChannelConfig, connector: AsyncMock
    ) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, content=b"not json")

        session = make_session(handler, channel_config, connector)
        with pytest.raises(json.JSONDecodeError):
            await session.refresh()

        assert len(requests) == 1
        assert session.store.version == 0
        await session.client.close()

    async def test_wait_for_snapshot_timeout(self, session: DashboardSession) -> None:
        assert await session.wait_for_snapshot(timeout=0.01) is False


class TestChangeListener:
    async def test_fires_for_store_tracker_and_channel(
        self, session: DashboardSession, fake_conn: FakeConnection, wait_until: WaitUntil
    ) -> None:
        calls: list[int] = []
        remove = session.add_change_listener(lambda: calls.append(1))
        async with session:
            await open_with(session, fake_conn, wait_until, instance_payload("a", "Stopped"))
            count = len(calls)
            await session.run_action(Action.START, "a")
            assert len(calls) >= count + 2  # lock acquired + released

        remove()
        assert calls
