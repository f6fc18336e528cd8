"""Admin REST API for the key-value server.

A small FastAPI application for health checks and operational stats.
It never touches keys or values; data access goes through the RESP
listener only.

Endpoints:
    GET /health - Health check
    GET /stats - Connection counts and key counts per database

Usage:
    from kv_server.adapters.inbound.admin_api import create_app

    app = create_app(server)
    # Run with uvicorn, or start_admin_server(server, port=8080)

References:
    - FastAPI documentation: https://fastapi.tiangolo.com/
"""

from __future__ import annotations

import threading

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from kv_server import __version__
from kv_server.application import KeyValueServer


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Health status")
    version: str = Field(..., description="Server version")


class StatsResponse(BaseModel):
    """Response model for server statistics."""

    version: str = Field(..., description="Server version")
    uptime_seconds: float = Field(..., description="Seconds since the listener was bound")
    connections: int = Field(..., description="Open client connections")
    sessions: int = Field(..., description="Connections with a database session")
    databases: dict[str, int] = Field(
        default_factory=dict, description="Key count per database index"
    )


def create_app(server: KeyValueServer) -> FastAPI:
    """Create a FastAPI application for the key-value server.

    Args:
        server: The server to report on.

    Returns:
        A configured FastAPI application.
    """
    app = FastAPI(
        title="KV Server Admin API",
        description="Health and statistics for the key-value server",
        version=__version__,
    )

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(
            status="healthy" if server.is_started else "unhealthy",
            version=__version__,
        )

    @app.get("/stats", response_model=StatsResponse, tags=["Stats"])
    async def get_stats() -> StatsResponse:
        """Get server statistics."""
        if not server.is_started:
            raise HTTPException(status_code=503, detail="Server not started")

        stats = server.get_stats()
        return StatsResponse(
            version=stats["version"],
            uptime_seconds=stats["uptime_seconds"],
            connections=stats["connections"],
            sessions=stats["sessions"],
            databases=stats["databases"],
        )

    return app


def start_admin_server(
    server: KeyValueServer,
    host: str = "127.0.0.1",
    port: int = 8080,
) -> threading.Thread:
    """Run the admin API with uvicorn on a daemon thread.

    Args:
        server: The key-value server to expose.
        host: Host to bind to.
        port: Port to bind to.

    Returns:
        The thread running uvicorn.
    """
    import uvicorn

    uvicorn_server = uvicorn.Server(
        uvicorn.Config(create_app(server), host=host, port=port, log_config=None)
    )
    thread = threading.Thread(target=uvicorn_server.run, name="kv-admin-api", daemon=True)
    thread.start()
    return thread
