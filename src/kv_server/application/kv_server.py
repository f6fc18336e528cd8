"""Key-value server - unified entry point.

This module provides the KeyValueServer class that wires the database
registry, the session table, the command dispatcher and a socket
listener together, and owns their lifecycle.

Usage:
    from kv_server.application import KeyValueServer
    from kv_server.infrastructure.config import Config, ServerConfig

    config = Config(server=ServerConfig(address="127.0.0.1:0"))
    with KeyValueServer(config) as server:
        host, port = server.address
        ...  # clients connect here

    # Or block the calling thread until stop() is called elsewhere:
    server = KeyValueServer(config)
    server.serve_forever()
"""

from __future__ import annotations

import threading
import time
from typing import Any

from kv_server import __version__
from kv_server.adapters.inbound.command_dispatcher import CommandDispatcher
from kv_server.adapters.inbound.tcp_server import create_listener
from kv_server.domain.services import DatabaseRegistry, SessionTable, init_databases
from kv_server.infrastructure.config import Config
from kv_server.infrastructure.logging import get_logger
from kv_server.infrastructure.metrics import MetricsRegistry

logger = get_logger(__name__)


class KeyValueServer:
    """Owns all server state and the listener that exposes it.

    State is built once in __init__ and passed down explicitly; nothing
    lives in module globals, so several servers can share a process
    (the tests rely on that).

    Thread Safety:
        start() and stop() must be called from a single controlling
        thread. Everything else is safe from any thread.
    """

    def __init__(
        self,
        config: Config | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the server and create its databases.

        Args:
            config: Server configuration. Defaults to Config().
            metrics: Optional metrics registry shared with the dispatcher
                and listener.
        """
        self._config = config or Config()
        self._metrics = metrics

        self._registry = init_databases(self._config.storage.databases)
        self._sessions = SessionTable(self._registry)
        self._dispatcher = CommandDispatcher(
            self._registry,
            self._sessions,
            metrics=metrics,
            unknown_command_policy=self._config.server.unknown_command_policy,
        )

        self._listener = None
        self._serve_thread: threading.Thread | None = None
        self._started_at: float | None = None

    @property
    def config(self) -> Config:
        return self._config

    @property
    def registry(self) -> DatabaseRegistry:
        return self._registry

    @property
    def sessions(self) -> SessionTable:
        return self._sessions

    @property
    def dispatcher(self) -> CommandDispatcher:
        return self._dispatcher

    @property
    def is_started(self) -> bool:
        return self._listener is not None

    @property
    def address(self) -> Any:
        """Bound address: (host, port) for TCP, a path for unix sockets.

        Raises:
            RuntimeError: If not started.
        """
        if self._listener is None:
            raise RuntimeError("Server not started")
        return self._listener.server_address

    def start(self) -> None:
        """Bind the listener and serve connections on a background thread.

        Raises:
            RuntimeError: If already started.
            OSError: If the address cannot be bound.
        """
        self._bind()
        self._serve_thread = threading.Thread(
            target=self._listener.serve_forever,
            name="kv-server-accept",
            daemon=True,
        )
        self._serve_thread.start()

    def serve_forever(self) -> None:
        """Bind and serve on the calling thread until stop() is called."""
        self._bind()
        try:
            self._listener.serve_forever()
        finally:
            self._close_listener()

    def stop(self) -> None:
        """Stop accepting, disconnect every client and release the address.

        Raises:
            RuntimeError: If not started.
        """
        if self._listener is None:
            raise RuntimeError("Server not started")

        logger.info("server_stopping", connections=self._listener.active_connections)
        self._listener.shutdown()
        if self._serve_thread is not None:
            self._serve_thread.join()
            self._serve_thread = None
            self._close_listener()

    def get_stats(self) -> dict[str, Any]:
        """Get server statistics.

        Returns:
            Dictionary with per-database key counts and connection info.
        """
        return {
            "version": __version__,
            "started": self.is_started,
            "uptime_seconds": (
                time.monotonic() - self._started_at if self._started_at is not None else 0.0
            ),
            "connections": self._listener.active_connections if self._listener else 0,
            "sessions": len(self._sessions),
            "databases": self._registry.sizes(),
        }

    def _bind(self) -> None:
        if self._listener is not None:
            raise RuntimeError("Server already started")

        self._listener = create_listener(
            self._config.server,
            self._dispatcher,
            self._sessions,
            metrics=self._metrics,
        )
        self._started_at = time.monotonic()
        logger.info(
            "server_listening",
            network=self._config.server.network,
            address=str(self._listener.server_address),
            databases=len(self._registry),
        )

    def _close_listener(self) -> None:
        listener, self._listener = self._listener, None
        if listener is None:
            return
        closed = listener.close_all_connections()
        listener.server_close()
        self._started_at = None
        logger.info("server_stopped", disconnected=closed)

    def __enter__(self) -> "KeyValueServer":
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.stop()
