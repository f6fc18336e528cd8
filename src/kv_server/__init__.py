"""KV Server - in-memory key-value store speaking RESP.

A multi-database string key-value server compatible with the subset of
the Redis protocol used by standard clients: array and inline request
framing, per-connection database selection, and O(1) random key sampling.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
