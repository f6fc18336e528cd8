"""Domain services for the key-value server.

Services own the in-memory state: the per-database storage engines,
the registry that holds them, and the session table that tracks which
database each connection has selected.
"""

from kv_server.domain.services.database_registry import DatabaseRegistry, init_databases
from kv_server.domain.services.rw_lock import ReadWriteLock
from kv_server.domain.services.session_table import SessionTable
from kv_server.domain.services.storage_engine import (
    INT64_MAX,
    INT64_MIN,
    IncrementOverflowError,
    KeyDoesNotExistError,
    NotAnIntegerError,
    StorageEngine,
    StorageError,
    parse_int64,
)

__all__ = [
    "DatabaseRegistry",
    "init_databases",
    "ReadWriteLock",
    "SessionTable",
    "StorageEngine",
    "StorageError",
    "KeyDoesNotExistError",
    "NotAnIntegerError",
    "IncrementOverflowError",
    "parse_int64",
    "INT64_MIN",
    "INT64_MAX",
]
