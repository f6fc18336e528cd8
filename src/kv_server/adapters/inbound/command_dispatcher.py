"""Command table and dispatcher.

Every command name maps to a handler with the signature

    handler(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None

A handler writes its own reply through ``ctx.reply``, including type and
range errors. It returns an ErrorKind only for failures whose wire form
belongs to the dispatcher (wrong arity), so the error text lives in one
place.

Supported commands:
    PING [message]          ECHO message
    SET key value           GET key
    DEL key [key ...]       EXISTS key [key ...]
    INCR key                DECR key
    INCRBY key amount       DECRBY key amount
    SELECT index            MOVE key index
    RANDOMKEY               DBSIZE
    FLUSHDB                 FLUSHALL
    QUIT
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence

from kv_server.adapters.inbound.resp_codec import Command, ReplyWriter
from kv_server.domain.services import (
    DatabaseRegistry,
    IncrementOverflowError,
    NotAnIntegerError,
    SessionTable,
    parse_int64,
)
from kv_server.domain.value_objects import (
    ConnectionId,
    Direction,
    ErrorKind,
    RequiresAmount,
    UnknownCommandPolicy,
)
from kv_server.infrastructure.logging import get_logger
from kv_server.infrastructure.metrics import UNKNOWN_COMMAND_LABEL, MetricsRegistry
from kv_server.infrastructure.tracing import trace_span
from kv_server.ports.inbound import Keyspace

logger = get_logger(__name__)


ERR_NOT_AN_INTEGER = "ERR value is not an integer or out of range"
ERR_OVERFLOW = "ERR increment or decrement would overflow"
ERR_DB_INDEX_OUT_OF_RANGE = "ERR DB index is out of range"
ERR_INTERNAL = "ERR internal error"


def wrong_number_of_arguments(command: str) -> str:
    return f"ERR wrong number of arguments for '{command}' command"


def unknown_command(command: str) -> str:
    return f"ERR unknown command '{command}'"


@dataclass
class CommandContext:
    """Everything a handler may touch while serving one command."""

    connection_id: ConnectionId
    reply: ReplyWriter
    sessions: SessionTable
    registry: DatabaseRegistry
    close_requested: bool = False

    @property
    def keyspace(self) -> Keyspace:
        """The database this connection currently has selected."""
        return self.sessions.engine_for(self.connection_id)


Handler = Callable[[CommandContext, Sequence[str]], Optional[ErrorKind]]


# Connection commands


def ping(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
    """PONG, or a bulk copy of the single argument."""
    if len(args) == 0:
        ctx.reply.simple_string("PONG")
    elif len(args) == 1:
        ctx.reply.bulk_string(args[0])
    else:
        return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS
    return None


def echo(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
    if len(args) != 1:
        return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS
    ctx.reply.bulk_string(args[0])
    return None


def select(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
    """Switch the connection to another logical database."""
    if len(args) != 1:
        return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS
    if ctx.sessions.select(ctx.connection_id, args[0]):
        ctx.reply.ok()
    else:
        ctx.reply.error(ERR_DB_INDEX_OUT_OF_RANGE)
    return None


def quit_(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
    """Release the session, acknowledge, then have the connection closed."""
    if len(args) != 0:
        return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS
    ctx.sessions.release(ctx.connection_id)
    ctx.reply.ok()
    ctx.close_requested = True
    return None


# String commands


def set_(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
    if len(args) != 2:
        return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS
    ctx.keyspace.write(args[0], args[1])
    ctx.reply.ok()
    return None


def get(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
    if len(args) != 1:
        return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS
    value, found = ctx.keyspace.read(args[0])
    if found:
        ctx.reply.bulk_string(value)
    else:
        ctx.reply.null_bulk()
    return None


def make_counter_handler(direction: Direction, requires_amount: RequiresAmount) -> Handler:
    """Build INCR, DECR, INCRBY or DECRBY.

    An absent key counts as 0. A stored value or amount that is not a
    signed 64-bit integer is a type error and nothing is written.
    """

    def counter(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
        if len(args) != requires_amount.arity:
            return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS

        amount = 1
        if requires_amount is RequiresAmount.YES:
            try:
                amount = parse_int64(args[1])
            except NotAnIntegerError:
                ctx.reply.error(ERR_NOT_AN_INTEGER)
                return None

        try:
            result = ctx.keyspace.increment_by(args[0], direction.apply(amount))
        except NotAnIntegerError:
            ctx.reply.error(ERR_NOT_AN_INTEGER)
        except IncrementOverflowError:
            ctx.reply.error(ERR_OVERFLOW)
        else:
            ctx.reply.integer(result)
        return None

    return counter


# Keyspace commands


def delete(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
    """Remove keys; reply with how many were actually removed."""
    if len(args) == 0:
        return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS
    keyspace = ctx.keyspace
    removed = sum(1 for key in args if keyspace.delete(key))
    ctx.reply.integer(removed)
    return None


def exists(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
    """Count present keys. A key repeated in args is counted each time."""
    if len(args) == 0:
        return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS
    keyspace = ctx.keyspace
    ctx.reply.integer(sum(1 for key in args if keyspace.exists(key)))
    return None


def move(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
    """Move a key to another database if it is not already there.

    Replies 1 when moved, 0 when the key is absent here or present in the
    destination, which makes MOVE usable as a locking primitive.
    """
    if len(args) != 2:
        return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS
    key, destination_index = args

    source = ctx.keyspace
    if not source.exists(key):
        ctx.reply.integer(0)
        return None

    destination = ctx.registry.lookup(destination_index)
    if destination is None:
        ctx.reply.error(ERR_DB_INDEX_OUT_OF_RANGE)
        return None

    ctx.reply.integer(1 if source.transfer(key, destination) else 0)
    return None


def random_key(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
    if len(args) != 0:
        return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS
    key = ctx.keyspace.random_key()
    if key is None:
        ctx.reply.null_bulk()
    else:
        ctx.reply.bulk_string(key)
    return None


def dbsize(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
    if len(args) != 0:
        return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS
    ctx.reply.integer(ctx.keyspace.size())
    return None


def flushdb(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
    if len(args) != 0:
        return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS
    ctx.keyspace.flush()
    ctx.reply.ok()
    return None


def flushall(ctx: CommandContext, args: Sequence[str]) -> ErrorKind | None:
    if len(args) != 0:
        return ErrorKind.WRONG_NUMBER_OF_ARGUMENTS
    ctx.registry.flush_all()
    ctx.reply.ok()
    return None


COMMAND_TABLE: Mapping[str, Handler] = {
    "dbsize": dbsize,
    "decr": make_counter_handler(Direction.DECREMENT, RequiresAmount.NO),
    "decrby": make_counter_handler(Direction.DECREMENT, RequiresAmount.YES),
    "del": delete,
    "echo": echo,
    "exists": exists,
    "flushall": flushall,
    "flushdb": flushdb,
    "get": get,
    "incr": make_counter_handler(Direction.INCREMENT, RequiresAmount.NO),
    "incrby": make_counter_handler(Direction.INCREMENT, RequiresAmount.YES),
    "move": move,
    "ping": ping,
    "quit": quit_,
    "randomkey": random_key,
    "select": select,
    "set": set_,
}


class CommandDispatcher:
    """Resolves command names and runs handlers against a session.

    The dispatcher owns the wire form of arity errors and unknown
    commands, records metrics and opens a trace span per command. Only
    transport errors (OSError) raised while replying escape dispatch().
    """

    def __init__(
        self,
        registry: DatabaseRegistry,
        sessions: SessionTable,
        metrics: MetricsRegistry | None = None,
        unknown_command_policy: UnknownCommandPolicy = UnknownCommandPolicy.CLOSE,
        commands: Mapping[str, Handler] | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            registry: All logical databases.
            sessions: Per-connection database selection.
            metrics: Optional metrics sink.
            unknown_command_policy: Drop the connection or reply with an
                error when a command is not in the table.
            commands: Command table override, COMMAND_TABLE by default.
        """
        self._registry = registry
        self._sessions = sessions
        self._metrics = metrics
        self._unknown_command_policy = UnknownCommandPolicy(unknown_command_policy)
        self._commands = dict(COMMAND_TABLE if commands is None else commands)

    def dispatch(
        self,
        connection_id: ConnectionId,
        reply: ReplyWriter,
        command: Command,
    ) -> bool:
        """Execute one command and write its reply.

        Returns:
            True if the connection should keep being served, False if it
            must be closed (QUIT, or an unknown command under the close
            policy).
        """
        handler = self._commands.get(command.name)
        if handler is None:
            return self._handle_unknown(reply, command)

        ctx = CommandContext(
            connection_id=connection_id,
            reply=reply,
            sessions=self._sessions,
            registry=self._registry,
        )
        errors_before = reply.errors_sent
        started = time.perf_counter()

        with trace_span("kv.command", {"kv.command": command.name}):
            try:
                failure = handler(ctx, command.args)
            except OSError:
                # Transport failure while replying; the connection is gone
                raise
            except Exception:
                logger.exception("command_failed", command=command.name)
                reply.error(ERR_INTERNAL)
                failure = None

        if failure is ErrorKind.WRONG_NUMBER_OF_ARGUMENTS:
            reply.error(wrong_number_of_arguments(command.name))
            status = "arity"
        elif reply.errors_sent > errors_before:
            status = "error"
        else:
            status = "ok"

        if self._metrics is not None:
            self._metrics.commands_total.labels(command=command.name, status=status).inc()
            self._metrics.command_latency_seconds.labels(command=command.name).observe(
                time.perf_counter() - started
            )

        return not ctx.close_requested

    def _handle_unknown(self, reply: ReplyWriter, command: Command) -> bool:
        logger.warning(
            "unknown_command",
            command=command.name,
            policy=self._unknown_command_policy.value,
        )
        if self._metrics is not None:
            self._metrics.commands_total.labels(
                command=UNKNOWN_COMMAND_LABEL, status="unknown"
            ).inc()

        if self._unknown_command_policy is UnknownCommandPolicy.ERROR:
            reply.error(unknown_command(command.name))
            return True
        return False
