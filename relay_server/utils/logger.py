"""
Server logging module.

This module handles server-side logging functionality.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List

from relay_common.constants import LOG_DIR, CHAT_LOG_FILE


class ServerLogger:
    """Server logging class."""

    def __init__(self, logs_dir: str = LOG_DIR, log_level: int = logging.INFO):
        self.logger = logging.getLogger('chat_relay_server')
        self.configure(logs_dir, log_level)

    def configure(self, logs_dir: str = LOG_DIR, log_level: int = logging.INFO):
        """(Re)build the console handler and the chat log location."""
        self.logs_dir = Path(logs_dir)
        self.logger.setLevel(log_level)

        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

        # Create console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)

        # Create formatter
        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(formatter)

        # Add handler to logger
        self.logger.addHandler(console_handler)

        # Set up file paths
        self.chat_log_path = self.logs_dir / CHAT_LOG_FILE

    def info(self, message: str):
        """Log info message."""
        self.logger.info(message)

    def error(self, message: str):
        """Log error message."""
        self.logger.error(message)

    def warning(self, message: str):
        """Log warning message."""
        self.logger.warning(message)

    def debug(self, message: str):
        """Log debug message."""
        self.logger.debug(message)

    def log_connection(self, addr: tuple):
        """Log client connection."""
        self.info(f"New connection from {addr}")

    def log_name_accepted(self, name: str, addr: tuple):
        """Log successful name negotiation."""
        self.info(f"User '{name}' joined from {addr}")

    def log_name_rejected(self, name: str, addr: tuple):
        """Log rejected name submission."""
        self.info(f"Name '{name}' rejected for {addr}, requesting another")

    def log_disconnect(self, name: str, addr: tuple):
        """Log client disconnect."""
        if name is None:
            self.info(f"Connection from {addr} closed before choosing a name")
        else:
            self.info(f"User '{name}' ({addr}) disconnected")

    def log_broadcast(self, sender: str, message: str, count: int):
        """Log broadcast message."""
        self.info(f"BROADCAST from {sender} to {count} clients: {message}")
        self._write_to_file(self.chat_log_path, f"{datetime.now().isoformat()} | [BROADCAST] {sender} | {message}")

    def log_multicast(self, sender: str, targets: List[str], message: str, count: int):
        """Log addressed message."""
        recipients = ', '.join(targets)
        self.info(f"MULTICAST from {sender} to [{recipients}] ({count} delivered): {message}")
        self._write_to_file(self.chat_log_path, f"{datetime.now().isoformat()} | [MULTICAST {sender}->{recipients}] {sender} | {message}")

    def log_unknown_recipient(self, sender: str, target: str):
        """Log addressed message to a name that is not registered."""
        self.debug(f"Skipping unknown recipient '{target}' in message from {sender}")

    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")

    def _write_to_file(self, file_path: Path, content: str):
        """Write content to log file."""
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'a', encoding='utf-8') as f:
                f.write(content + '\n')
        except OSError as e:
            self.error(f"Failed to write to log file {file_path}: {e}")


# Global logger instance
logger = ServerLogger()
