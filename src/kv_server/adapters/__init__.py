"""Adapters layer - concrete implementations at the system boundary.

- Inbound adapters: RESP codec, command dispatcher, socket listeners,
  admin REST API
"""
