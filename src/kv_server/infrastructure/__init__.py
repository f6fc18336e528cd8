"""Infrastructure layer - cross-cutting concerns."""

from kv_server.infrastructure.config import Config, get_config
from kv_server.infrastructure.logging import connection_context, get_logger, setup_logging
from kv_server.infrastructure.metrics import MetricsRegistry, setup_metrics
from kv_server.infrastructure.tracing import get_tracer, setup_tracing, trace_span

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "get_logger",
    "connection_context",
    "setup_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
    "trace_span",
]
