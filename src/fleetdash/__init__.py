"""fleetdash - live control-plane client for container instance fleets."""

__version__ = "0.1.0"
