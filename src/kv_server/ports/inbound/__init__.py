"""Inbound ports - contracts the command layer relies on."""

from kv_server.ports.inbound.keyspace import Keyspace

__all__ = [
    "Keyspace",
]
