"""Enumerations shared by command handlers and the dispatcher."""

from __future__ import annotations

from enum import Enum, auto


class ErrorKind(Enum):
    """Typed failure a command handler hands back to the dispatcher.

    Handlers encode their own domain replies (type and range errors
    included); only failures whose wire form is owned by the dispatcher
    are reported through this enum.
    """

    WRONG_NUMBER_OF_ARGUMENTS = auto()
    """Argument count does not match the command's arity."""


class Direction(Enum):
    """Sign applied by the INCR/DECR family."""

    INCREMENT = 1
    DECREMENT = -1

    def apply(self, amount: int) -> int:
        """Return the signed delta for a positive or negative amount."""
        return amount * self.value


class RequiresAmount(Enum):
    """Whether a counter command takes an explicit amount argument."""

    NO = 1
    YES = 2

    @property
    def arity(self) -> int:
        """Number of arguments the command accepts."""
        return self.value


class UnknownCommandPolicy(str, Enum):
    """What the dispatcher does with a command name it does not know."""

    CLOSE = "close"
    """Drop the connection without replying."""

    ERROR = "error"
    """Reply with an error and keep the connection open."""
