"""Fixed set of logical databases created at startup.

The registry maps database index strings ("0".."N") to StorageEngine
instances. The set of databases never changes after construction, so
lookups need no locking.
"""

from __future__ import annotations

import random
from typing import Dict, Iterator, Mapping, Optional

from kv_server.domain.services.storage_engine import StorageEngine
from kv_server.domain.value_objects import DatabaseIndex


class DatabaseRegistry:
    """Immutable index -> StorageEngine mapping."""

    def __init__(self, engines: Mapping[str, StorageEngine]) -> None:
        """Wrap an already-built set of engines.

        Use init_databases() to build a registry from a database count.

        Raises:
            ValueError: If engines is empty.
        """
        if not engines:
            raise ValueError("A registry needs at least one database")
        self._engines: Dict[str, StorageEngine] = dict(engines)

    def lookup(self, index: str) -> Optional[StorageEngine]:
        """Return the engine for index, or None if it was never created."""
        return self._engines.get(index)

    def __contains__(self, index: object) -> bool:
        return index in self._engines

    def __len__(self) -> int:
        return len(self._engines)

    def __iter__(self) -> Iterator[StorageEngine]:
        return iter(self._engines.values())

    def indices(self) -> list[DatabaseIndex]:
        """All database indices in ascending numeric order."""
        return sorted((DatabaseIndex(i) for i in self._engines), key=int)

    def flush_all(self) -> None:
        """Clear every database. Each engine is flushed under its own lock."""
        for engine in self._engines.values():
            engine.flush()

    def sizes(self) -> dict[str, int]:
        """Key count per database index."""
        return {index: self._engines[index].size() for index in self.indices()}


def init_databases(n: int, rng: random.Random | None = None) -> DatabaseRegistry:
    """Create databases "0" through str(n), i.e. n + 1 engines.

    Called once at startup, before any connection is served.

    Args:
        n: Highest database index.
        rng: Optional shared random source for RANDOMKEY sampling.

    Raises:
        ValueError: If n is negative.
    """
    if n < 0:
        raise ValueError(f"Database count must be non-negative, got {n}")

    engines = {}
    for i in range(n + 1):
        index = DatabaseIndex(str(i))
        engines[index] = StorageEngine(index, rng=rng)
    return DatabaseRegistry(engines)
