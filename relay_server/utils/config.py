"""
Server configuration module.

This module handles server-side configuration settings.
"""

from typing import Optional

from relay_common.constants import (
    DEFAULT_SERVER_HOST, DEFAULT_PORT, MAX_LINE_LENGTH, IDLE_TIMEOUT, FLUSH_TIMEOUT, OUTBOUND_QUEUE_LIMIT, LOG_DIR
)


class ServerConfig:
    """Server configuration class."""

    def __init__(self, host: str = DEFAULT_SERVER_HOST, port: int = DEFAULT_PORT, logs_dir: str = LOG_DIR,
                 idle_timeout: Optional[float] = IDLE_TIMEOUT, echo_addressed: bool = False,
                 flush_timeout: float = FLUSH_TIMEOUT, outbound_queue_limit: int = OUTBOUND_QUEUE_LIMIT):
        self.host = host
        self.port = port

        # Logging configuration
        self.logs_dir = logs_dir

        # Connection settings
        self.max_line_length = MAX_LINE_LENGTH
        self.idle_timeout = idle_timeout  # None keeps idle clients forever
        self.flush_timeout = flush_timeout
        self.outbound_queue_limit = outbound_queue_limit  # lines, then the client is dropped

        # Routing settings
        self.echo_addressed = echo_addressed  # also show addressed messages to their sender

    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port
        }

    def get_routing_settings(self):
        """Get message routing settings."""
        return {
            'echo_addressed': self.echo_addressed
        }

    def get_log_settings(self):
        """Get logging settings."""
        return {
            'logs_dir': self.logs_dir
        }
