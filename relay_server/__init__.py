"""
Server package for the chat relay.

This package contains all server-side functionality including:
- Connection acceptance and per-client handlers
- Display name registration
- Message routing (broadcast and addressed multicast)
- Configuration and utilities
"""
