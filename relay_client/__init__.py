"""
Client package for the chat relay.

This package contains all client-side functionality including:
- Connecting and negotiating a display name
- Sending broadcast and addressed messages
- PyQt6 and terminal user interfaces
- Configuration and utilities
"""
