"""Keyspace port - the contract command handlers use against a database.

StorageEngine is the in-memory implementation. Handlers only depend on
this protocol, so an alternative engine can be dropped in without
touching the dispatcher.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Optional, Protocol, Tuple


class Keyspace(Protocol):
    """Protocol for one logical database of string keys.

    Thread Safety:
        All methods must be safe to call from many connection threads.
    """

    @property
    @abstractmethod
    def index(self) -> str:
        """Database index this keyspace is registered under."""
        ...

    @abstractmethod
    def read(self, key: str) -> Tuple[Optional[str], bool]:
        """Return (value, True) if present, (None, False) otherwise."""
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def write(self, key: str, value: str) -> None:
        """Create or overwrite key."""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key. Returns True only if it was present."""
        ...

    @abstractmethod
    def size(self) -> int:
        ...

    @abstractmethod
    def random_key(self) -> Optional[str]:
        """Uniformly sampled key, or None when empty."""
        ...

    @abstractmethod
    def increment_by(self, key: str, delta: int) -> int:
        """Atomic read-modify-write on an integer value.

        Raises:
            NotAnIntegerError: If the stored value is not an integer.
            IncrementOverflowError: If the result overflows int64.
        """
        ...

    @abstractmethod
    def flush(self) -> None:
        ...

    @abstractmethod
    def transfer(self, key: str, destination: "Keyspace") -> bool:
        """Atomically move key into destination if it is absent there."""
        ...
