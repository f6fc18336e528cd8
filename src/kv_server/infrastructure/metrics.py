"""Prometheus metrics for the key-value server."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
    REGISTRY,
    CollectorRegistry,
)


UNKNOWN_COMMAND_LABEL = "unknown"


class MetricsRegistry:
    """Registry of all key-value server metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Command metrics
        self.commands_total = Counter(
            "kv_commands_total",
            "Total number of commands processed",
            ["command", "status"],  # status: ok, error, arity, unknown
            registry=self._registry,
        )

        self.command_latency_seconds = Histogram(
            "kv_command_latency_seconds",
            "Command execution latency in seconds",
            ["command"],
            buckets=(0.00005, 0.0001, 0.00025, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1),
            registry=self._registry,
        )

        self.protocol_errors_total = Counter(
            "kv_protocol_errors_total",
            "Total malformed requests",
            registry=self._registry,
        )

        # Connection metrics
        self.connections_active = Gauge(
            "kv_connections_active",
            "Number of open client connections",
            registry=self._registry,
        )

        self.connections_total = Counter(
            "kv_connections_total",
            "Total client connections accepted",
            registry=self._registry,
        )

        # Server info
        self.info = Info(
            "kv_server",
            "Key-value server information",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry


def setup_metrics(port: int = 9121, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up Prometheus metrics server.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    from kv_server import __version__

    metrics = MetricsRegistry(registry)
    metrics.info.info({"version": __version__})

    start_http_server(port, registry=metrics.registry)
    return metrics

