"""Pytest configuration and fixtures for kv_server tests."""

from __future__ import annotations

import io
import random

import pytest
from prometheus_client import CollectorRegistry

from kv_server.adapters.inbound.command_dispatcher import CommandDispatcher
from kv_server.adapters.inbound.resp_codec import Command, ReplyWriter
from kv_server.domain.services import DatabaseRegistry, SessionTable, init_databases
from kv_server.domain.value_objects import ConnectionId
from kv_server.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def registry() -> DatabaseRegistry:
    """Registry with databases "0" through "3"."""
    return init_databases(3, rng=random.Random(1234))


@pytest.fixture
def sessions(registry: DatabaseRegistry) -> SessionTable:
    return SessionTable(registry)


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def dispatcher(
    registry: DatabaseRegistry,
    sessions: SessionTable,
    metrics_registry: MetricsRegistry,
) -> CommandDispatcher:
    return CommandDispatcher(registry, sessions, metrics=metrics_registry)


class FakeConnection:
    """Runs commands through a dispatcher and captures the raw replies."""

    def __init__(self, dispatcher: CommandDispatcher, connection_id: int = 1) -> None:
        self.dispatcher = dispatcher
        self.connection_id = ConnectionId(connection_id)
        self.sink = io.BytesIO()
        self.reply = ReplyWriter(self.sink)
        self.open = True

    def call(self, name: str, *args: str) -> bytes:
        """Dispatch one command and return exactly the bytes it produced."""
        start = self.sink.tell()
        self.open = self.dispatcher.dispatch(
            self.connection_id, self.reply, Command(name=name, args=tuple(args))
        )
        return self.sink.getvalue()[start:]


@pytest.fixture
def conn(dispatcher: CommandDispatcher) -> FakeConnection:
    return FakeConnection(dispatcher, connection_id=1)


@pytest.fixture
def other_conn(dispatcher: CommandDispatcher) -> FakeConnection:
    return FakeConnection(dispatcher, connection_id=2)


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests over real sockets")
    config.addinivalue_line("markers", "slow: Slow tests")
