"""Value objects for the key-value server domain.

Exports:
    Identifiers:
        - ConnectionId: Opaque per-connection identity
        - ConnectionIdGenerator: Thread-safe ConnectionId source
        - DatabaseIndex: Decimal index of a logical database
        - DEFAULT_DATABASE: Index every new session starts on

    Command Types:
        - ErrorKind: Typed handler failures encoded by the dispatcher
        - Direction: Sign of an INCR/DECR style command
        - RequiresAmount: Whether a counter command takes an amount
        - UnknownCommandPolicy: Reaction to unregistered commands
"""

from kv_server.domain.value_objects.command_types import (
    Direction,
    ErrorKind,
    RequiresAmount,
    UnknownCommandPolicy,
)
from kv_server.domain.value_objects.identifiers import (
    DEFAULT_DATABASE,
    ConnectionId,
    ConnectionIdGenerator,
    DatabaseIndex,
)

__all__ = [
    # Identifiers
    "ConnectionId",
    "ConnectionIdGenerator",
    "DatabaseIndex",
    "DEFAULT_DATABASE",
    # Command types
    "ErrorKind",
    "Direction",
    "RequiresAmount",
    "UnknownCommandPolicy",
]
