"""Application layer for the key-value server.

Exports:
    KeyValueServer:
        - KeyValueServer: Builds and runs the whole server
"""

from kv_server.application.kv_server import KeyValueServer

__all__ = [
    "KeyValueServer",
]
