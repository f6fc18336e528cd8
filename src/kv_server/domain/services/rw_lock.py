"""Reader/writer lock for storage engine state.

Lock Modes:
    - SHARED: Any number of readers at once
    - EXCLUSIVE: A single writer, no readers

Writers are preferred: once a writer is waiting, new readers queue
behind it, so a steady stream of GETs cannot starve SET/DEL.

The lock is not reentrant. A thread holding it in either mode must not
acquire it again.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class ReadWriteLock:
    """Shared/exclusive lock built on a condition variable.

    Example:
        lock = ReadWriteLock()
        with lock.read_locked():
            ...  # concurrent readers
        with lock.write_locked():
            ...  # exclusive writer
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer_active = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        """Acquire the lock in shared mode."""
        with self._cond:
            while self._writer_active or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        """Release a shared hold."""
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read() called without a shared hold")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        """Acquire the lock in exclusive mode."""
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer_active or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer_active = True

    def release_write(self) -> None:
        """Release the exclusive hold."""
        with self._cond:
            if not self._writer_active:
                raise RuntimeError("release_write() called without an exclusive hold")
            self._writer_active = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    @property
    def readers(self) -> int:
        """Number of shared holders right now (diagnostics only)."""
        with self._cond:
            return self._readers

    @property
    def write_held(self) -> bool:
        """Whether a writer currently holds the lock (diagnostics only)."""
        with self._cond:
            return self._writer_active
