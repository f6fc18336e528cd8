"""Stream ports - where requests are read from and replies written to.

A connected socket's read and write files satisfy these protocols, as does
io.BytesIO, which the tests use.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Protocol


class ReplySink(Protocol):
    """Binary writable stream."""

    @abstractmethod
    def write(self, data: bytes) -> int | None:
        """Write data. May block on a slow peer."""
        ...

    @abstractmethod
    def flush(self) -> None:
        ...


class LineSource(Protocol):
    """Binary readable stream the request decoder pulls from."""

    @abstractmethod
    def readline(self, limit: int = -1) -> bytes:
        """Read up to and including the next LF, or limit bytes."""
        ...

    @abstractmethod
    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes. Fewer bytes means end of stream."""
        ...
