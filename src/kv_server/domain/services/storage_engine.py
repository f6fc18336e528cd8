"""Storage engine for a single logical database.

Holds string keys mapped to string values and supports uniform random
key sampling in O(1).

Data layout:
    - entries: key -> value
    - key_order: dense list of every present key
    - key_position: key -> index of that key in key_order

Invariant:
    For every key k in entries, key_order[key_position[k]] == k, and
    len(entries) == len(key_order) == len(key_position). All three are
    only ever mutated together, inside the same exclusive section.

Deletion swaps the last element of key_order into the freed slot
(swap-delete), so removal stays O(1) and iteration order is not
preserved.

Thread Safety:
    Reads take the engine's ReadWriteLock in shared mode, every mutation
    takes it in exclusive mode. transfer() holds two engines' exclusive
    locks at once, acquired in ascending database order.
"""

from __future__ import annotations

import random
import re
from contextlib import ExitStack
from typing import Dict, List, Optional, Tuple

from kv_server.domain.services.rw_lock import ReadWriteLock
from kv_server.domain.value_objects import DatabaseIndex


INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


class StorageError(Exception):
    """Base class for storage engine errors."""

    pass


class KeyDoesNotExistError(StorageError):
    """Raised when an integer read targets an absent key."""

    pass


class NotAnIntegerError(StorageError):
    """Raised when a stored value is not a base-10 signed 64-bit integer."""

    pass


class IncrementOverflowError(StorageError):
    """Raised when an increment would leave the signed 64-bit range."""

    pass


def parse_int64(text: str) -> int:
    """Parse a base-10 signed 64-bit integer.

    Accepts an optional sign followed by ASCII digits, nothing else.

    Raises:
        NotAnIntegerError: If text is not an integer or is out of range.
    """
    if not _INTEGER_PATTERN.fullmatch(text):
        raise NotAnIntegerError(f"not an integer: {text!r}")
    value = int(text)
    if not INT64_MIN <= value <= INT64_MAX:
        raise NotAnIntegerError(f"integer out of range: {text!r}")
    return value


class StorageEngine:
    """One logical database of string keys and string values."""

    def __init__(self, index: DatabaseIndex, rng: random.Random | None = None) -> None:
        """Initialize an empty engine.

        Args:
            index: The database index this engine is registered under.
            rng: Random source for random_key(). Defaults to a private
                random.Random instance.
        """
        self._index = index
        self._rng = rng or random.Random()
        self._lock = ReadWriteLock()

        self._entries: Dict[str, str] = {}
        self._key_order: List[str] = []
        self._key_position: Dict[str, int] = {}

    @property
    def index(self) -> DatabaseIndex:
        """The database index this engine is registered under."""
        return self._index

    def __repr__(self) -> str:
        return f"StorageEngine(index={self._index!r})"

    # Reads

    def read(self, key: str) -> Tuple[Optional[str], bool]:
        """Return (value, True) if key is present, else (None, False)."""
        with self._lock.read_locked():
            value = self._entries.get(key)
            return value, value is not None

    def exists(self, key: str) -> bool:
        with self._lock.read_locked():
            return key in self._entries

    def size(self) -> int:
        """Number of keys in this database."""
        with self._lock.read_locked():
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def random_key(self) -> Optional[str]:
        """Return a uniformly sampled key, or None if the database is empty."""
        with self._lock.read_locked():
            if not self._key_order:
                return None
            return self._key_order[self._rng.randrange(len(self._key_order))]

    def read_int(self, key: str) -> int:
        """Read the value at key as a signed 64-bit integer.

        Raises:
            KeyDoesNotExistError: If key is absent.
            NotAnIntegerError: If the stored value is not an integer.
        """
        value, found = self.read(key)
        if not found:
            raise KeyDoesNotExistError(key)
        return parse_int64(value)

    # Mutations

    def write(self, key: str, value: str) -> None:
        """Set key to value. Existing keys keep their sampling slot."""
        with self._lock.write_locked():
            self._insert(key, value)

    def delete(self, key: str) -> bool:
        """Remove key.

        Returns:
            True if the key was present and removed, False if absent.
        """
        with self._lock.write_locked():
            return self._remove(key)

    def increment_by(self, key: str, delta: int) -> int:
        """Atomically add delta to the integer stored at key.

        An absent key counts as 0. Nothing is written when the stored
        value is not an integer or the result overflows.

        Returns:
            The new value.

        Raises:
            NotAnIntegerError: If the stored value is not an integer.
            IncrementOverflowError: If the result leaves the int64 range.
        """
        with self._lock.write_locked():
            current = self._entries.get(key)
            base = 0 if current is None else parse_int64(current)
            result = base + delta
            if not INT64_MIN <= result <= INT64_MAX:
                raise IncrementOverflowError(f"{base} + {delta} overflows int64")
            self._insert(key, str(result))
            return result

    def flush(self) -> None:
        """Remove every key."""
        with self._lock.write_locked():
            self._entries = {}
            self._key_order = []
            self._key_position = {}

    def transfer(self, key: str, destination: StorageEngine) -> bool:
        """Move key from this engine into destination.

        Both engines are locked exclusively for the whole operation, lower
        database index first, so concurrent transfers neither deadlock nor
        duplicate or lose the value.

        Returns:
            True if the key was moved. False if it is absent here, already
            present in destination, or destination is this engine.
        """
        if destination is self:
            return False

        with ExitStack() as stack:
            for engine in sorted((self, destination), key=_lock_order):
                stack.enter_context(engine._lock.write_locked())

            value = self._entries.get(key)
            if value is None or key in destination._entries:
                return False
            destination._insert(key, value)
            self._remove(key)
            return True

    # Internal helpers; callers must hold the exclusive lock

    def _insert(self, key: str, value: str) -> None:
        if key not in self._entries:
            self._key_position[key] = len(self._key_order)
            self._key_order.append(key)
        self._entries[key] = value

    def _remove(self, key: str) -> bool:
        position = self._key_position.pop(key, None)
        if position is None:
            return False

        last_key = self._key_order.pop()
        if last_key != key:
            # Fill the hole with the former last key
            self._key_order[position] = last_key
            self._key_position[last_key] = position

        del self._entries[key]
        return True


def _lock_order(engine: StorageEngine) -> Tuple[int, int]:
    """Total order over engines used when locking more than one."""
    index = engine.index
    if index.isdigit():
        return int(index), id(engine)
    return INT64_MAX, id(engine)
