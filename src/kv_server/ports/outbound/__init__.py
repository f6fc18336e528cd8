"""Outbound ports - byte streams the protocol layer talks to."""

from kv_server.ports.outbound.streams import LineSource, ReplySink

__all__ = [
    "LineSource",
    "ReplySink",
]
