"""Command API HTTP client.

Issues instance lifecycle commands:

    POST {base_url}/instances/{action}        create, start_all, stop_all,
                                              restart_all, purge
    POST {base_url}/instances/{id}/{action}   start, stop, restart, delete

Any 2xx is success. Every other outcome (non-2xx of any code, connect
error, timeout) is a CommandFailedError; callers treat them uniformly.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from fleetdash.app.metrics.collector import COMMAND_DURATION
from fleetdash.core.domain.instance import Action
from fleetdash.core.errors import CommandFailedError
from fleetdash.core.logging_schema import LogEvent
from fleetdash.core.models.instance import Instance, parse_instances

logger = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    """Command API connection configuration."""

    base_url: str
    api_key: str = ""
    timeout: float = 120.0


class CommandClient:
    """HTTP client for the instance command API."""

    def __init__(
        self,
        config: ClientConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_headers(self) -> dict[str, str]:
        """Get request headers with API key."""
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url.rstrip("/"),
                headers=self._get_headers(),
                timeout=self._config.timeout,
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        method: Literal["get", "post"],
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make HTTP request, raising HTTPStatusError on non-2xx."""
        client = await self._get_client()
        resp = await getattr(client, method)(path, **kwargs)
        if not resp.is_success:
            # raise_for_status() lets 1xx/3xx through
            raise httpx.HTTPStatusError(
                f"HTTP {resp.status_code} for {method.upper()} {path}",
                request=resp.request,
                response=resp,
            )
        return resp

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # Commands
    # =========================================================================

    @staticmethod
    def command_path(action: Action, instance_id: str | None = None) -> str:
        """Build the command URL path for an action.

        Raises:
            ValueError: If instance_id is missing for an instance action or
                given for a fleet action.
        """
        if action.is_fleet:
            if instance_id is not None:
                raise ValueError(f"{action} is a fleet action; no instance id expected")
            return f"/instances/{action}"
        if not instance_id:
            raise ValueError(f"{action} requires an instance id")
        return f"/instances/{instance_id}/{action}"

    async def dispatch(self, action: Action, instance_id: str | None = None) -> None:
        """Send one lifecycle command and wait for its outcome.

        Raises:
            CommandFailedError: On non-2xx response or transport failure.
        """
        path = self.command_path(action, instance_id)
        started = time.monotonic()
        try:
            await self._request("post", path)
        except httpx.HTTPStatusError as exc:
            raise CommandFailedError(
                action, instance_id=instance_id, status_code=exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            raise CommandFailedError(
                action,
                instance_id=instance_id,
                message=f"Command {action} could not reach the API: {exc}",
            ) from exc
        finally:
            COMMAND_DURATION.labels(action=action.value).observe(time.monotonic() - started)

        logger.info(
            "Command accepted: %s",
            path,
            extra={
                "event": LogEvent.COMMAND_SUCCESS,
                "action": action.value,
                "instance_id": instance_id,
            },
        )

    async def create(self) -> None:
        await self.dispatch(Action.CREATE)

    async def start(self, instance_id: str) -> None:
        await self.dispatch(Action.START, instance_id)

    async def stop(self, instance_id: str) -> None:
        await self.dispatch(Action.STOP, instance_id)

    async def restart(self, instance_id: str) -> None:
        await self.dispatch(Action.RESTART, instance_id)

    async def delete(self, instance_id: str) -> None:
        await self.dispatch(Action.DELETE, instance_id)

    async def start_all(self) -> None:
        await self.dispatch(Action.START_ALL)

    async def stop_all(self) -> None:
        await self.dispatch(Action.STOP_ALL)

    async def restart_all(self) -> None:
        await self.dispatch(Action.RESTART_ALL)

    async def purge(self) -> None:
        await self.dispatch(Action.PURGE)

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_instances(self) -> tuple[Instance, ...]:
        """Fetch a full snapshot over HTTP (fallback when no push channel)."""
        resp = await self._request("get", "/instances")
        return parse_instances(resp.json())

    async def inspect(self, instance_id: str) -> tuple[Instance, ...]:
        """Ask the server to re-inspect one instance and return it."""
        resp = await self._request("post", f"/instances/{instance_id}/inspect")
        return parse_instances(resp.json())
