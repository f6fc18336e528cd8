"""Configuration management for the key-value server."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kv_server.domain.value_objects import UnknownCommandPolicy


class StorageConfig(BaseModel):
    """Storage configuration."""

    databases: int = Field(
        default=16,
        ge=0,
        le=1024,
        description="Highest database index; databases 0..N are created",
    )


class ServerConfig(BaseModel):
    """Listener and connection configuration."""

    network: Literal["tcp", "tcp4", "tcp6", "unix"] = Field(
        default="tcp", description="Socket family to listen on"
    )
    address: str = Field(
        default="127.0.0.1:6379",
        description="host:port for TCP, socket path for unix",
    )
    idle_timeout_seconds: float | None = Field(
        default=None, gt=0, description="Per-connection read/write deadline"
    )
    max_inline_bytes: int = Field(
        default=64 * 1024, ge=1024, description="Longest accepted request line"
    )
    max_bulk_bytes: int = Field(
        default=512 * 1024 * 1024, ge=1024, description="Largest accepted bulk field"
    )
    unknown_command_policy: UnknownCommandPolicy = Field(
        default=UnknownCommandPolicy.CLOSE,
        description="Drop the connection or reply with an error on unknown commands",
    )
    admin_port: int | None = Field(
        default=None, ge=0, le=65535, description="FastAPI admin API port (disabled if unset)"
    )
    metrics_port: int | None = Field(
        default=None, ge=0, le=65535, description="Prometheus metrics port (disabled if unset)"
    )

    @model_validator(mode="after")
    def _check_address(self) -> ServerConfig:
        if self.network != "unix":
            host, _, port = self.address.rpartition(":")
            if not host or not port.isdigit() or not 0 <= int(port) <= 65535:
                raise ValueError(f"address must be host:port, got {self.address!r}")
        elif not self.address:
            raise ValueError("unix sockets need a path")
        return self

    def bind_address(self) -> tuple[str, int] | str:
        """Address in the form socketserver expects for this network."""
        if self.network == "unix":
            return self.address
        host, _, port = self.address.rpartition(":")
        return host.strip("[]"), int(port)


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="kv_server", description="Service name for tracing")


class Config(BaseSettings):
    """Main configuration for the key-value server."""

    model_config = SettingsConfigDict(
        env_prefix="KV_SERVER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
