"""Snapshot wire models."""

from fleetdash.core.models.instance import (
    Container,
    Endpoints,
    Instance,
    parse_instances,
    parse_snapshot,
)

__all__ = [
    "Container",
    "Endpoints",
    "Instance",
    "parse_instances",
    "parse_snapshot",
]
