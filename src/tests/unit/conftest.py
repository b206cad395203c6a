"""Shared fixtures for fleetdash unit tests."""

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from unittest.mock import AsyncMock

import httpx
import pytest

from fleetdash.api.client import ClientConfig, CommandClient
from fleetdash.app.config import ChannelConfig, get_settings
from fleetdash.session.controller import DashboardSession
from tests.unit.fakes import FakeConnection


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Iterator[None]:
    """Settings are cached per process; tests that patch env need a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def connector(fake_conn: FakeConnection) -> AsyncMock:
    """Connector that always hands out fake_conn."""
    return AsyncMock(return_value=fake_conn)


@pytest.fixture
def channel_config() -> ChannelConfig:
    return ChannelConfig(
        url="ws://test/api/instances/ws",
        reconnect_max_attempts=0,
        reconnect_base_delay=0.01,
        reconnect_max_delay=0.02,
    )


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate until true; fail the test after timeout seconds."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        async def _poll() -> None:
            while not predicate():
                await asyncio.sleep(0.005)

        await asyncio.wait_for(_poll(), timeout)

    return _wait


@pytest.fixture
def http_calls() -> list[httpx.Request]:
    return []


@pytest.fixture
def http_status() -> dict[str, int]:
    """Response status per request path (default 200)."""
    return {}


@pytest.fixture
def transport(
    http_calls: list[httpx.Request], http_status: dict[str, int]
) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        http_calls.append(request)
        return httpx.Response(http_status.get(request.url.path, 200))

    return httpx.MockTransport(handler)


@pytest.fixture
def session(
    transport: httpx.MockTransport,
    channel_config: ChannelConfig,
    connector: AsyncMock,
) -> DashboardSession:
    client = CommandClient(ClientConfig(base_url="http://test/api"), transport=transport)
    return DashboardSession(client, channel_config, connector)
