"""
Client configuration module.

This module handles client-side configuration settings.
"""

from typing import Optional

from relay_common.constants import DEFAULT_HOST, DEFAULT_PORT, CONNECT_TIMEOUT, MAX_RETRY_ATTEMPTS


class ClientConfig:
    """Client configuration class."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, username: Optional[str] = None):
        self.host = host
        self.port = port
        self.username = username  # None means ask when the server requests a name

        # Connection settings
        self.connect_timeout = CONNECT_TIMEOUT
        self.retry_attempts = MAX_RETRY_ATTEMPTS

    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port,
            'username': self.username
        }
