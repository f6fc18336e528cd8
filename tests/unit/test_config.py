"""Unit tests for configuration module."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from kv_server.domain.value_objects import UnknownCommandPolicy
from kv_server.infrastructure.config import (
    Config,
    ServerConfig,
    StorageConfig,
    get_config,
)


@pytest.mark.unit
class TestConfig:
    """Tests for Config class."""

    def test_default_config(self) -> None:
        """Test default configuration values."""
        config = Config()

        assert config.storage.databases == 16
        assert config.server.network == "tcp"
        assert config.server.address == "127.0.0.1:6379"
        assert config.server.idle_timeout_seconds is None
        assert config.server.unknown_command_policy is UnknownCommandPolicy.CLOSE
        assert config.server.admin_port is None
        assert config.observability.log_format == "json"

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Nested settings are read from KV_SERVER_<SECTION>__<FIELD>."""
        monkeypatch.setenv("KV_SERVER_STORAGE__DATABASES", "4")
        monkeypatch.setenv("KV_SERVER_SERVER__ADDRESS", "0.0.0.0:7000")
        monkeypatch.setenv("KV_SERVER_SERVER__UNKNOWN_COMMAND_POLICY", "error")

        config = Config()

        assert config.storage.databases == 4
        assert config.server.address == "0.0.0.0:7000"
        assert config.server.unknown_command_policy is UnknownCommandPolicy.ERROR

    def test_invalid_database_count(self) -> None:
        with pytest.raises(ValidationError):
            StorageConfig(databases=-1)

    def test_invalid_idle_timeout(self) -> None:
        with pytest.raises(ValidationError):
            ServerConfig(idle_timeout_seconds=0)

    def test_unixpacket_network_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ServerConfig(network="unixpacket", address="/tmp/kv.sock")  # type: ignore

    def test_invalid_policy(self) -> None:
        with pytest.raises(ValidationError):
            ServerConfig(unknown_command_policy="ignore")  # type: ignore


@pytest.mark.unit
class TestServerAddress:
    """Address validation and bind_address()."""

    def test_ipv4(self) -> None:
        assert ServerConfig(address="127.0.0.1:6380").bind_address() == ("127.0.0.1", 6380)

    def test_ipv6_brackets_stripped(self) -> None:
        server = ServerConfig(network="tcp6", address="[::1]:6379")

        assert server.bind_address() == ("::1", 6379)

    def test_unix_path(self) -> None:
        server = ServerConfig(network="unix", address="/tmp/kv.sock")

        assert server.bind_address() == "/tmp/kv.sock"

    @pytest.mark.parametrize("address", ["localhost", ":6379", "host:port", "host:70000"])
    def test_bad_tcp_address(self, address: str) -> None:
        with pytest.raises(ValidationError):
            ServerConfig(address=address)

    def test_empty_unix_path(self) -> None:
        with pytest.raises(ValidationError):
            ServerConfig(network="unix", address="")


@pytest.mark.unit
class TestConfigSingleton:
    """Tests for get_config singleton."""

    def test_get_config_returns_same_instance(self) -> None:
        config1 = get_config()
        config2 = get_config()
        assert config1 is config2
