"""Command API client."""

from fleetdash.api.client import ClientConfig, CommandClient

__all__ = ["ClientConfig", "CommandClient"]
