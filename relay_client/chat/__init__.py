"""
Chat module for client-side messaging functionality.

Handles:
- Answering name requests
- Sending broadcast and addressed messages
- Dispatching chat lines and roster updates
"""
