"""Integration tests for KeyValueServer over real sockets."""

from __future__ import annotations

import socket
import threading
import time
from pathlib import Path
from typing import Iterator

import pytest

from kv_server.application import KeyValueServer
from kv_server.infrastructure.config import Config, ServerConfig, StorageConfig


class Client:
    """Minimal blocking client that sends raw bytes and reads replies."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock
        self.sock.settimeout(5)
        self.rfile = sock.makefile("rb")

    def send(self, data: bytes) -> None:
        self.sock.sendall(data)

    def command(self, *parts: str) -> bytes:
        """Send an array-framed command and return one raw reply."""
        encoded = [part.encode() for part in parts]
        frame = b"*%d\r\n" % len(encoded)
        for part in encoded:
            frame += b"$%d\r\n%s\r\n" % (len(part), part)
        self.send(frame)
        return self.read_reply()

    def read_reply(self) -> bytes:
        line = self.rfile.readline()
        if line.startswith(b"$") and line != b"$-1\r\n":
            length = int(line[1:-2])
            line += self.rfile.read(length + 2)
        return line

    def close(self) -> None:
        self.rfile.close()
        self.sock.close()


def make_server(**server_options) -> KeyValueServer:
    server_options.setdefault("address", "127.0.0.1:0")
    config = Config(
        storage=StorageConfig(databases=3),
        server=ServerConfig(**server_options),
    )
    return KeyValueServer(config)


@pytest.fixture
def server() -> Iterator[KeyValueServer]:
    server = make_server()
    server.start()
    yield server
    if server.is_started:
        server.stop()


@pytest.fixture
def client(server: KeyValueServer) -> Iterator[Client]:
    client = Client(socket.create_connection(server.address))
    yield client
    client.close()


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.mark.integration
class TestKeyValueServer:
    """End-to-end command handling."""

    def test_array_framing(self, client: Client) -> None:
        assert client.command("SET", "greeting", "hello world") == b"+OK\r\n"
        assert client.command("GET", "greeting") == b"$11\r\nhello world\r\n"

    def test_inline_framing(self, client: Client) -> None:
        client.send(b"PING\r\n")
        assert client.read_reply() == b"+PONG\r\n"

        client.send(b"SET k v\r\nEXISTS k k\r\n")
        assert client.read_reply() == b"+OK\r\n"
        assert client.read_reply() == b":2\r\n"

    def test_binary_safe_value(self, client: Client) -> None:
        value = "line one\r\nline two"

        client.command("SET", "k", value)

        assert client.command("GET", "k") == b"$18\r\nline one\r\nline two\r\n"

    def test_select_is_per_connection(self, server: KeyValueServer, client: Client) -> None:
        other = Client(socket.create_connection(server.address))
        try:
            assert client.command("SELECT", "2") == b"+OK\r\n"
            client.command("SET", "k", "v")

            assert other.command("GET", "k") == b"$-1\r\n"
            assert server.registry.lookup("2").read("k") == ("v", True)
        finally:
            other.close()

    def test_quit_closes_connection(self, server: KeyValueServer, client: Client) -> None:
        assert client.command("QUIT") == b"+OK\r\n"
        assert client.rfile.readline() == b""
        assert wait_for(lambda: len(server.sessions) == 0)

    def test_unknown_command_drops_connection(self, client: Client) -> None:
        client.send(b"FOO bar\r\n")

        assert client.rfile.readline() == b""

    def test_concurrent_increments(self, server: KeyValueServer) -> None:
        def worker() -> None:
            worker_client = Client(socket.create_connection(server.address))
            try:
                for _ in range(200):
                    worker_client.command("INCR", "counter")
            finally:
                worker_client.close()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(30)

        assert server.registry.lookup("0").read("counter") == ("1600", True)

    def test_connection_counts(self, server: KeyValueServer, client: Client) -> None:
        client.command("PING")

        stats = server.get_stats()
        assert stats["connections"] == 1
        assert stats["started"] is True


@pytest.mark.integration
class TestLifecycle:
    """Start, stop and listener variants."""

    def test_stop_disconnects_clients(self, server: KeyValueServer, client: Client) -> None:
        assert client.command("PING") == b"+PONG\r\n"

        server.stop()

        assert client.rfile.readline() == b""
        assert not server.is_started

    def test_double_start_rejected(self, server: KeyValueServer) -> None:
        with pytest.raises(RuntimeError):
            server.start()

    def test_stop_without_start(self) -> None:
        with pytest.raises(RuntimeError):
            make_server().stop()

    def test_context_manager(self) -> None:
        with make_server() as server:
            client = Client(socket.create_connection(server.address))
            assert client.command("DBSIZE") == b":0\r\n"
            client.close()
        assert not server.is_started

    def test_idle_timeout_closes_connection(self) -> None:
        with make_server(idle_timeout_seconds=0.2) as server:
            client = Client(socket.create_connection(server.address))
            try:
                assert client.rfile.readline() == b""
            finally:
                client.close()

    @pytest.mark.skipif(not hasattr(socket, "AF_UNIX"), reason="unix sockets unavailable")
    def test_unix_socket(self, tmp_path: Path) -> None:
        path = str(tmp_path / "kv.sock")

        with make_server(network="unix", address=path) as server:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            sock.connect(path)
            client = Client(sock)
            try:
                assert client.command("PING") == b"+PONG\r\n"
            finally:
                client.close()

        assert not Path(path).exists()
