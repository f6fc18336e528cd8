"""Per-connection database selection.

Every connection starts on database "0" and may switch with SELECT.
The table holds only the selected index; engines are owned by the
DatabaseRegistry and shared between sessions.

Thread Safety:
    All operations go through one lock over the table. Engine locks are
    never taken while it is held.
"""

from __future__ import annotations

import threading
from typing import Dict

from kv_server.domain.services.database_registry import DatabaseRegistry
from kv_server.domain.services.storage_engine import StorageEngine
from kv_server.domain.value_objects import DEFAULT_DATABASE, ConnectionId, DatabaseIndex


class SessionTable:
    """Maps ConnectionId to the database that connection has selected."""

    def __init__(self, registry: DatabaseRegistry) -> None:
        """Initialize the session table.

        Raises:
            ValueError: If the registry has no default database.
        """
        if DEFAULT_DATABASE not in registry:
            raise ValueError(f"Registry is missing default database {DEFAULT_DATABASE!r}")
        self._registry = registry
        self._lock = threading.Lock()
        self._selected: Dict[ConnectionId, DatabaseIndex] = {}

    def engine_for(self, connection_id: ConnectionId) -> StorageEngine:
        """Return the connection's selected engine.

        A connection without a session is bound to the default database
        as a side effect.
        """
        with self._lock:
            index = self._selected.setdefault(connection_id, DEFAULT_DATABASE)
        return self._registry.lookup(index)

    def select(self, connection_id: ConnectionId, index: str) -> bool:
        """Bind the connection to database index.

        Returns:
            True on success, False if the index does not exist. The
            current selection is left untouched on failure.
        """
        if index not in self._registry:
            return False
        with self._lock:
            self._selected[connection_id] = DatabaseIndex(index)
        return True

    def selected_index(self, connection_id: ConnectionId) -> DatabaseIndex:
        """Index the connection would use, without creating a session."""
        with self._lock:
            return self._selected.get(connection_id, DEFAULT_DATABASE)

    def release(self, connection_id: ConnectionId) -> None:
        """Forget the connection's session. Safe to call repeatedly."""
        with self._lock:
            self._selected.pop(connection_id, None)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._selected

    def __len__(self) -> int:
        with self._lock:
            return len(self._selected)
