"""
Shared definitions for the chat relay.

This package contains the constants and line formats used by both the
server and the client.
"""
