"""Identifiers for connections and logical databases.

Connections are identified by an opaque integer handed out at accept
time, never by the peer's network address. Databases are identified by
their decimal index string, exactly as clients send it in SELECT/MOVE.
"""

from __future__ import annotations

import itertools
import threading
from typing import NewType


ConnectionId = NewType("ConnectionId", int)
"""Opaque per-connection identity. Monotonically increasing, never reused."""

DatabaseIndex = NewType("DatabaseIndex", str)
"""Decimal index of a logical database ("0", "1", ...)."""

DEFAULT_DATABASE = DatabaseIndex("0")


class ConnectionIdGenerator:
    """Thread-safe source of fresh ConnectionIds.

    Example:
        >>> ids = ConnectionIdGenerator()
        >>> ids.next_id()
        1
        >>> ids.next_id()
        2
    """

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next_id(self) -> ConnectionId:
        with self._lock:
            return ConnectionId(next(self._counter))
