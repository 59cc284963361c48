"""
Chat module for server-side messaging functionality.

Handles:
- Per-connection protocol state machine
- Client registry and roster broadcasts
- Broadcast and addressed message routing
- Serialized outbound writes per client
"""
