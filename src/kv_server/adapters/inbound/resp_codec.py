"""RESP request decoder and reply encoder.

Requests arrive in one of two framings, chosen by the first byte of a
line:

    Array framing (what client libraries send):
        *2\\r\\n$3\\r\\nGET\\r\\n$3\\r\\nkey\\r\\n

    Inline framing (what a human types into telnet):
        GET key\\r\\n

Array fields are read by their declared byte length, so they may hold
spaces or CR/LF. Inline requests are split on single spaces with no
quoting, so an inline argument can never contain a space.

Replies use five shapes:

    Simple string   +OK\\r\\n
    Error           -ERR message\\r\\n
    Integer         :42\\r\\n
    Bulk string     $5\\r\\nhello\\r\\n
    Null bulk       $-1\\r\\n

Text is decoded as UTF-8 with surrogateescape, so arbitrary bytes survive
a round trip and bulk lengths are always byte lengths.

References:
    - https://redis.io/docs/reference/protocol-spec/
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from kv_server.ports.outbound import LineSource, ReplySink


CRLF = b"\r\n"
ARRAY_PREFIX = b"*"
BULK_PREFIX = b"$"

DEFAULT_MAX_INLINE_BYTES = 64 * 1024
DEFAULT_MAX_BULK_BYTES = 512 * 1024 * 1024

NULL_BULK = b"$-1\r\n"
OK = b"+OK\r\n"

_TEXT_ENCODING = "utf-8"
_TEXT_ERRORS = "surrogateescape"


class ProtocolError(Exception):
    """Raised for a malformed request. The connection stays usable."""

    pass


class ConnectionClosedError(Exception):
    """Raised when the peer closed the stream, possibly mid-request."""

    pass


class Framing(Enum):
    """How a request was framed on the wire."""

    ARRAY = "array"
    INLINE = "inline"


@dataclass(frozen=True)
class Command:
    """A decoded request: lower-cased command name plus arguments."""

    name: str
    args: tuple[str, ...] = field(default_factory=tuple)
    framing: Framing = Framing.ARRAY


def decode_text(raw: bytes) -> str:
    return raw.decode(_TEXT_ENCODING, _TEXT_ERRORS)


def encode_text(text: str) -> bytes:
    return text.encode(_TEXT_ENCODING, _TEXT_ERRORS)


class CommandReader:
    """Pulls one Command at a time from a binary stream.

    Example:
        reader = CommandReader(sock.makefile("rb"))
        command = reader.read_command()
    """

    def __init__(
        self,
        source: LineSource,
        max_inline_bytes: int = DEFAULT_MAX_INLINE_BYTES,
        max_bulk_bytes: int = DEFAULT_MAX_BULK_BYTES,
    ) -> None:
        """Initialize the reader.

        Args:
            source: Stream to read requests from.
            max_inline_bytes: Longest accepted line (inline request or
                array/bulk header), excluding the line terminator.
            max_bulk_bytes: Largest accepted array field.
        """
        self._source = source
        self._max_inline_bytes = max_inline_bytes
        self._max_bulk_bytes = max_bulk_bytes

    def read_command(self) -> Command | None:
        """Read and decode the next request.

        Returns:
            The decoded Command, or None for a request that carries no
            command (a blank inline line or an empty array).

        Raises:
            ConnectionClosedError: If the stream ended.
            ProtocolError: If the request is malformed.
        """
        line = self._read_line()
        if line.startswith(ARRAY_PREFIX):
            return self._read_array(line)
        return self._parse_inline(line)

    def _read_line(self) -> bytes:
        limit = self._max_inline_bytes + len(CRLF)
        line = self._source.readline(limit)
        if not line:
            raise ConnectionClosedError("peer closed the connection")
        if not line.endswith(b"\n"):
            if len(line) >= limit:
                # Drop the rest of the line so none of it is decoded later
                self._skip_line()
                raise ProtocolError("too big inline request")
            raise ConnectionClosedError("stream ended mid-line")
        return line

    def _skip_line(self) -> bool:
        """Discard input up to and including the next LF.

        Returns:
            False if the stream ended first, True otherwise.
        """
        limit = self._max_inline_bytes + len(CRLF)
        while True:
            chunk = self._source.readline(limit)
            if chunk.endswith(b"\n"):
                return True
            if len(chunk) < limit:
                return False

    def _read_array(self, header: bytes) -> Command | None:
        count = _parse_length(header[1:], "multibulk length")
        if count <= 0:
            return None

        fields = []
        for position in range(count):
            try:
                fields.append(self._read_bulk_field())
            except ProtocolError:
                # Consume the header and content line of every field still
                # declared, so a malformed array never yields extra commands
                remaining = 2 * (count - position - 1)
                for _ in range(remaining):
                    if not self._skip_line():
                        break
                raise
        return Command(
            name=fields[0].lower(),
            args=tuple(fields[1:]),
            framing=Framing.ARRAY,
        )

    def _read_bulk_field(self) -> str:
        """Read one $<len> field.

        On a bad header the field's content line is discarded before
        ProtocolError is raised, leaving the stream at the next field.
        """
        try:
            header = self._read_line()
            if not header.startswith(BULK_PREFIX):
                raise ProtocolError(
                    f"expected '$', got '{decode_text(header[:1])}'"
                )
            length = _parse_length(header[1:], "bulk length")
            if length < 0 or length > self._max_bulk_bytes:
                raise ProtocolError("invalid bulk length")
        except ProtocolError:
            self._skip_line()
            raise

        payload = self._source.read(length + len(CRLF))
        if len(payload) < length + len(CRLF):
            raise ConnectionClosedError("stream ended inside a bulk string")
        if payload[length:] != CRLF:
            if not payload.endswith(b"\n"):
                self._skip_line()
            raise ProtocolError("bulk string is not terminated by CRLF")
        return decode_text(payload[:length])

    @staticmethod
    def _parse_inline(line: bytes) -> Command | None:
        text = decode_text(line).strip()
        if not text:
            return None
        tokens = text.split(" ")
        return Command(
            name=tokens[0].lower(),
            args=tuple(tokens[1:]),
            framing=Framing.INLINE,
        )


def _parse_length(raw: bytes, what: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise ProtocolError(f"invalid {what}") from None


# Encoders


def encode_simple_string(text: str) -> bytes:
    """+<text>\\r\\n. Simple strings cannot carry CR or LF."""
    if "\r" in text or "\n" in text:
        raise ValueError("simple strings cannot contain CR or LF")
    return b"+" + encode_text(text) + CRLF


def encode_error(message: str) -> bytes:
    """-<message>\\r\\n. Line breaks in the message become spaces."""
    message = message.replace("\r", " ").replace("\n", " ")
    return b"-" + encode_text(message) + CRLF


def encode_integer(value: int) -> bytes:
    return b":" + str(value).encode("ascii") + CRLF


def encode_bulk_string(text: str) -> bytes:
    payload = encode_text(text)
    return b"$" + str(len(payload)).encode("ascii") + CRLF + payload + CRLF


class ReplyWriter:
    """Writes exactly one encoded frame per call to a ReplySink.

    Counts replies and error replies so callers can tell after the fact
    whether a command answered with an error.
    """

    def __init__(self, sink: ReplySink) -> None:
        self._sink = sink
        self.replies_sent = 0
        self.errors_sent = 0

    def simple_string(self, text: str) -> None:
        self._send(encode_simple_string(text))

    def ok(self) -> None:
        self._send(OK)

    def error(self, message: str) -> None:
        self.errors_sent += 1
        self._send(encode_error(message))

    def integer(self, value: int) -> None:
        self._send(encode_integer(value))

    def bulk_string(self, text: str) -> None:
        self._send(encode_bulk_string(text))

    def null_bulk(self) -> None:
        self._send(NULL_BULK)

    def _send(self, frame: bytes) -> None:
        self._sink.write(frame)
        self._sink.flush()
        self.replies_sent += 1
