"""Inbound adapters for the key-value server.

Inbound adapters turn bytes from clients into domain operations.

Exports:
    RESP Codec:
        - CommandReader: Decodes array and inline framed requests
        - ReplyWriter: Encodes the five reply shapes
        - Command: A decoded request
        - ProtocolError, ConnectionClosedError: Decoding failures
    Dispatcher:
        - CommandDispatcher: Runs handlers against a session
        - CommandContext: Per-command handler context
        - COMMAND_TABLE: Command name -> handler
    Listeners:
        - handle_connection: The per-connection request loop
        - create_listener: Bind a TCP or Unix listener from config

The admin API lives in kv_server.adapters.inbound.admin_api and is
imported on demand, since it depends on the application layer.
"""

from kv_server.adapters.inbound.command_dispatcher import (
    COMMAND_TABLE,
    CommandContext,
    CommandDispatcher,
    make_counter_handler,
)
from kv_server.adapters.inbound.resp_codec import (
    Command,
    CommandReader,
    ConnectionClosedError,
    Framing,
    ProtocolError,
    ReplyWriter,
)
from kv_server.adapters.inbound.tcp_server import (
    KeyValueTCP6Server,
    KeyValueTCPServer,
    create_listener,
    handle_connection,
)

__all__ = [
    # RESP codec
    "Command",
    "CommandReader",
    "ConnectionClosedError",
    "Framing",
    "ProtocolError",
    "ReplyWriter",
    # Dispatcher
    "COMMAND_TABLE",
    "CommandContext",
    "CommandDispatcher",
    "make_counter_handler",
    # Listeners
    "KeyValueTCPServer",
    "KeyValueTCP6Server",
    "create_listener",
    "handle_connection",
]
