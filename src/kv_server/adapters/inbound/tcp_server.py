"""Stream socket listeners and the per-connection request loop.

One thread serves each accepted connection. A worker only blocks on its
own socket, so a slow client stalls nobody else. Commands are fully
processed and replied to before the next request is read.

Listeners:
    - KeyValueTCPServer: IPv4 TCP
    - KeyValueTCP6Server: IPv6 TCP
    - KeyValueUnixServer: Unix domain stream socket

Each listener hands out a fresh ConnectionId per accepted socket and
keeps track of live sockets so that close_all_connections() can force
workers off their blocking reads during shutdown.
"""

from __future__ import annotations

import os
import socket
import socketserver
import stat
import threading
from typing import Dict

from kv_server.adapters.inbound.command_dispatcher import CommandDispatcher
from kv_server.adapters.inbound.resp_codec import (
    DEFAULT_MAX_BULK_BYTES,
    DEFAULT_MAX_INLINE_BYTES,
    CommandReader,
    ConnectionClosedError,
    ProtocolError,
    ReplyWriter,
)
from kv_server.domain.services import SessionTable
from kv_server.domain.value_objects import ConnectionId, ConnectionIdGenerator
from kv_server.infrastructure.config import ServerConfig
from kv_server.infrastructure.logging import connection_context, get_logger
from kv_server.infrastructure.metrics import MetricsRegistry
from kv_server.ports.outbound import LineSource, ReplySink

logger = get_logger(__name__)

_AF_UNIX = getattr(socket, "AF_UNIX", None)


def handle_connection(
    connection_id: ConnectionId,
    source: LineSource,
    sink: ReplySink,
    dispatcher: CommandDispatcher,
    sessions: SessionTable,
    max_inline_bytes: int = DEFAULT_MAX_INLINE_BYTES,
    max_bulk_bytes: int = DEFAULT_MAX_BULK_BYTES,
    metrics: MetricsRegistry | None = None,
) -> None:
    """Serve requests from source until the connection ends.

    The loop stops on end of stream, on a transport error, or when the
    dispatcher asks for the connection to be closed. The session is
    released in every case.

    A malformed request is answered with a protocol error and the loop
    carries on after the rejected request.
    """
    reader = CommandReader(
        source,
        max_inline_bytes=max_inline_bytes,
        max_bulk_bytes=max_bulk_bytes,
    )
    reply = ReplyWriter(sink)

    try:
        while True:
            try:
                command = reader.read_command()
            except ProtocolError as exc:
                logger.warning("protocol_error", error=str(exc))
                if metrics is not None:
                    metrics.protocol_errors_total.inc()
                reply.error(f"ERR Protocol error: {exc}")
                continue

            if command is None:
                continue

            logger.debug(
                "command_received",
                command=command.name,
                argc=len(command.args),
                framing=command.framing.value,
            )
            if not dispatcher.dispatch(connection_id, reply, command):
                break
    except ConnectionClosedError:
        logger.debug("peer_closed")
    except OSError as exc:
        # Covers resets, broken pipes and idle timeouts
        logger.info("connection_error", error=repr(exc))
    finally:
        sessions.release(connection_id)


class ConnectionHandler(socketserver.StreamRequestHandler):
    """socketserver handler running handle_connection() for one socket."""

    server: "_ConnectionTrackingMixin"

    def setup(self) -> None:
        self.timeout = self.server.idle_timeout
        self.disable_nagle_algorithm = self.server.address_family != _AF_UNIX
        super().setup()
        self.connection_id = self.server.register_connection(self.connection)

    def handle(self) -> None:
        peer = self.client_address or "unix"
        with connection_context(self.connection_id, peer):
            logger.info("connection_opened")
            handle_connection(
                self.connection_id,
                self.rfile,
                self.wfile,
                self.server.dispatcher,
                self.server.sessions,
                max_inline_bytes=self.server.max_inline_bytes,
                max_bulk_bytes=self.server.max_bulk_bytes,
                metrics=self.server.metrics,
            )
            logger.info("connection_closed")

    def finish(self) -> None:
        try:
            super().finish()
        finally:
            self.server.unregister_connection(self.connection_id)


class _ConnectionTrackingMixin:
    """Shared state and bookkeeping for all listener flavours."""

    daemon_threads = True
    allow_reuse_address = True

    def __init__(
        self,
        server_address,
        dispatcher: CommandDispatcher,
        sessions: SessionTable,
        *,
        idle_timeout: float | None = None,
        max_inline_bytes: int = DEFAULT_MAX_INLINE_BYTES,
        max_bulk_bytes: int = DEFAULT_MAX_BULK_BYTES,
        metrics: MetricsRegistry | None = None,
        bind_and_activate: bool = True,
    ) -> None:
        self.dispatcher = dispatcher
        self.sessions = sessions
        self.idle_timeout = idle_timeout
        self.max_inline_bytes = max_inline_bytes
        self.max_bulk_bytes = max_bulk_bytes
        self.metrics = metrics

        self._ids = ConnectionIdGenerator()
        self._connections: Dict[ConnectionId, socket.socket] = {}
        self._connections_lock = threading.Lock()

        super().__init__(server_address, ConnectionHandler, bind_and_activate)

    def register_connection(self, sock: socket.socket) -> ConnectionId:
        connection_id = self._ids.next_id()
        with self._connections_lock:
            self._connections[connection_id] = sock
        if self.metrics is not None:
            self.metrics.connections_total.inc()
            self.metrics.connections_active.inc()
        return connection_id

    def unregister_connection(self, connection_id: ConnectionId) -> None:
        with self._connections_lock:
            removed = self._connections.pop(connection_id, None)
        if removed is not None and self.metrics is not None:
            self.metrics.connections_active.dec()

    @property
    def active_connections(self) -> int:
        with self._connections_lock:
            return len(self._connections)

    def close_all_connections(self) -> int:
        """Shut down every live socket so its worker leaves its read.

        Returns:
            Number of connections that were signalled.
        """
        with self._connections_lock:
            live = list(self._connections.items())

        for connection_id, sock in live:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError as exc:
                # Already torn down by the peer
                logger.debug("shutdown_failed", connection_id=connection_id, error=repr(exc))
        return len(live)


class KeyValueTCPServer(_ConnectionTrackingMixin, socketserver.ThreadingTCPServer):
    """Threaded IPv4 TCP listener."""


class KeyValueTCP6Server(KeyValueTCPServer):
    """Threaded IPv6 TCP listener."""

    address_family = socket.AF_INET6


if _AF_UNIX is not None:

    class KeyValueUnixServer(_ConnectionTrackingMixin, socketserver.ThreadingUnixStreamServer):
        """Threaded Unix domain socket listener."""

        def server_close(self) -> None:
            super().server_close()
            _remove_stale_socket(self.server_address)


def _remove_stale_socket(path: str) -> None:
    try:
        if stat.S_ISSOCK(os.stat(path).st_mode):
            os.unlink(path)
    except FileNotFoundError:
        pass


def create_listener(
    config: ServerConfig,
    dispatcher: CommandDispatcher,
    sessions: SessionTable,
    metrics: MetricsRegistry | None = None,
) -> _ConnectionTrackingMixin:
    """Bind a listener for the configured network and address.

    Raises:
        ValueError: If unix sockets are requested on a platform without them.
        OSError: If the address cannot be bound.
    """
    address = config.bind_address()
    if config.network == "unix":
        if _AF_UNIX is None:
            raise ValueError("unix sockets are not supported on this platform")
        _remove_stale_socket(address)
        listener_class = KeyValueUnixServer
    elif config.network == "tcp6" or (config.network == "tcp" and ":" in address[0]):
        listener_class = KeyValueTCP6Server
    else:
        listener_class = KeyValueTCPServer

    return listener_class(
        address,
        dispatcher,
        sessions,
        idle_timeout=config.idle_timeout_seconds,
        max_inline_bytes=config.max_inline_bytes,
        max_bulk_bytes=config.max_bulk_bytes,
        metrics=metrics,
    )
