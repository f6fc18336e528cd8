"""Integration tests for the admin REST API."""

from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from kv_server import __version__
from kv_server.adapters.inbound.admin_api import create_app
from kv_server.application import KeyValueServer
from kv_server.infrastructure.config import Config, ServerConfig, StorageConfig


@pytest.fixture
def server() -> Iterator[KeyValueServer]:
    config = Config(
        storage=StorageConfig(databases=2),
        server=ServerConfig(address="127.0.0.1:0"),
    )
    server = KeyValueServer(config)
    yield server
    if server.is_started:
        server.stop()


@pytest.mark.integration
class TestAdminApi:
    """GET /health and GET /stats."""

    def test_health_before_start(self, server: KeyValueServer) -> None:
        client = TestClient(create_app(server))

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "unhealthy", "version": __version__}

    def test_stats_before_start(self, server: KeyValueServer) -> None:
        client = TestClient(create_app(server))

        assert client.get("/stats").status_code == 503

    def test_health_and_stats(self, server: KeyValueServer) -> None:
        server.start()
        server.registry.lookup("1").write("k", "v")
        client = TestClient(create_app(server))

        assert client.get("/health").json()["status"] == "healthy"

        stats = client.get("/stats").json()
        assert stats["databases"] == {"0": 0, "1": 1, "2": 0}
        assert stats["connections"] == 0
        assert stats["uptime_seconds"] >= 0
