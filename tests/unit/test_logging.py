"""Unit tests for structured logging setup."""

from __future__ import annotations

import io
import json
from typing import Iterator

import pytest
import structlog

from kv_server.infrastructure.logging import connection_context, get_logger, setup_logging


@pytest.fixture
def log_stream() -> Iterator[io.StringIO]:
    stream = io.StringIO()
    setup_logging("DEBUG", "json", stream=stream)
    yield stream
    structlog.reset_defaults()


def events(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.startswith("{")]


@pytest.mark.unit
class TestLogging:
    """JSON output and per-connection context."""

    def test_json_event(self, log_stream: io.StringIO) -> None:
        get_logger("test", component="unit").info("something_happened", count=3)

        [event] = events(log_stream)
        assert event["event"] == "something_happened"
        assert event["count"] == 3
        assert event["component"] == "unit"
        assert event["level"] == "info"
        assert "timestamp" in event

    def test_connection_context_is_bound_and_cleared(self, log_stream: io.StringIO) -> None:
        logger = get_logger("test")

        with connection_context(42, ("127.0.0.1", 50000)):
            logger.info("inside")
        logger.info("outside")

        inside, outside = events(log_stream)
        assert inside["connection_id"] == 42
        assert inside["peer"] == "('127.0.0.1', 50000)"
        assert "connection_id" not in outside

    def test_level_filtering(self) -> None:
        stream = io.StringIO()
        setup_logging("WARNING", "json", stream=stream)
        try:
            logger = get_logger("test")
            logger.info("dropped")
            logger.warning("kept")
        finally:
            structlog.reset_defaults()

        assert [event["event"] for event in events(stream)] == ["kept"]
