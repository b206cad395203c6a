"""Prometheus metrics module."""

from prometheus_client import REGISTRY, generate_latest, start_http_server


def setup_metrics(port: int) -> None:
    """Expose metrics over HTTP for the lifetime of the process."""
    start_http_server(port)


def render_metrics() -> bytes:
    """Render current metrics in Prometheus text format."""
    return generate_latest(REGISTRY)
