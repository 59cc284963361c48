"""
Shared constants for the chat relay.

This module contains all constants used across client and server components.
"""

# Network Configuration
DEFAULT_HOST = 'localhost'
DEFAULT_SERVER_HOST = '0.0.0.0'
DEFAULT_PORT = 9001

# Buffer Sizes
MAX_LINE_LENGTH = 64 * 1024  # asyncio.StreamReader limit for one protocol line

# Timeouts
CONNECT_TIMEOUT = 10  # seconds
IDLE_TIMEOUT = None  # seconds, None disables the idle check
FLUSH_TIMEOUT = 5  # seconds allowed for pending lines when a connection closes

# Outbound lines queued for one client before it is disconnected as too slow
OUTBOUND_QUEUE_LIMIT = 1000

# Reconnection
MAX_RETRY_ATTEMPTS = 3
RECONNECT_DELAY_BASE = 1.0  # seconds, doubled on every retry

# Logging
LOG_DIR = 'logs'
CHAT_LOG_FILE = 'chat_history.log'

# Wire encoding
ENCODING = 'utf-8'
LINE_TERMINATOR = '\n'

# Addressed multicast notation: target1>>target2>>message
MULTICAST_DELIMITER = '>>'
# Separator between names in an ACTIVEUSERS roster line
ROSTER_SEPARATOR = ':'


# Protocol keywords
class MessageTypes:
    # Server to Client
    SUBMIT_NAME = 'SUBMITNAME'
    NAME_ACCEPTED = 'NAMEACCEPTED'
    MESSAGE = 'MESSAGE'
    ACTIVE_USERS = 'ACTIVEUSERS'

    # Anything the client does not recognise
    UNKNOWN = 'UNKNOWN'
