"""Command line entry point: ``kv-server`` or ``python -m kv_server``.

Flags override values from the environment (KV_SERVER_* variables),
which override the built-in defaults.
"""

from __future__ import annotations

import argparse
import signal
import threading
from typing import Sequence

from kv_server import __version__
from kv_server.application import KeyValueServer
from kv_server.infrastructure.config import Config, get_config
from kv_server.infrastructure.logging import get_logger, setup_logging
from kv_server.infrastructure.metrics import setup_metrics
from kv_server.infrastructure.tracing import setup_tracing


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kv-server",
        description="In-memory key-value server speaking RESP",
    )
    parser.add_argument(
        "--network",
        choices=["tcp", "tcp4", "tcp6", "unix"],
        help="Socket family to listen on",
    )
    parser.add_argument(
        "--address",
        help="host:port to listen on, or a socket path for unix",
    )
    parser.add_argument(
        "--db-num",
        type=int,
        help="Highest database index (databases 0..N are created)",
    )
    parser.add_argument(
        "--idle-timeout",
        type=float,
        help="Close connections idle for this many seconds",
    )
    parser.add_argument(
        "--unknown-command",
        choices=["close", "error"],
        help="Drop the connection or reply with an error on unknown commands",
    )
    parser.add_argument("--admin-port", type=int, help="Serve the admin REST API on this port")
    parser.add_argument("--metrics-port", type=int, help="Expose Prometheus metrics on this port")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument("--log-format", choices=["json", "console"])
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def config_from_args(args: argparse.Namespace, base: Config | None = None) -> Config:
    """Overlay command line flags on a base configuration.

    Raises:
        pydantic.ValidationError: If a flag value is invalid.
    """
    base = base or get_config()

    server_overrides = {
        "network": args.network,
        "address": args.address,
        "idle_timeout_seconds": args.idle_timeout,
        "unknown_command_policy": args.unknown_command,
        "admin_port": args.admin_port,
        "metrics_port": args.metrics_port,
    }
    observability_overrides = {
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    storage_overrides = {"databases": args.db_num}

    def merged(section, overrides):
        values = section.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return type(section).model_validate(values)

    return Config(
        storage=merged(base.storage, storage_overrides),
        server=merged(base.server, server_overrides),
        observability=merged(base.observability, observability_overrides),
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = config_from_args(args)

    setup_logging(config.observability.log_level, config.observability.log_format)
    logger = get_logger("kv_server")

    if config.observability.otel_endpoint:
        setup_tracing(
            service_name=config.observability.otel_service_name,
            otlp_endpoint=config.observability.otel_endpoint,
        )

    metrics = None
    if config.server.metrics_port is not None:
        metrics = setup_metrics(config.server.metrics_port)

    server = KeyValueServer(config, metrics=metrics)
    try:
        server.start()
    except OSError as exc:
        logger.error("bind_failed", address=config.server.address, error=str(exc))
        return 1

    if config.server.admin_port is not None:
        from kv_server.adapters.inbound.admin_api import start_admin_server

        start_admin_server(server, port=config.server.admin_port)

    stop_requested = threading.Event()

    def request_stop(signum, frame) -> None:
        logger.info("signal_received", signal=signal.Signals(signum).name)
        stop_requested.set()

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    stop_requested.wait()
    server.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
