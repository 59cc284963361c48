"""
Protocol definitions for the chat relay.

This module defines the line formats exchanged between client and server.
Every protocol message is one line of UTF-8 text terminated by a newline;
the builders below return the line without its terminator.
"""

from typing import List, Optional, Union
from dataclasses import dataclass, field

from relay_common.constants import (
    MessageTypes, MULTICAST_DELIMITER, ROSTER_SEPARATOR, LINE_TERMINATOR, ENCODING
)


@dataclass
class ServerLine:
    """A parsed server-to-client line."""
    kind: str
    payload: Union[str, List[str]] = ''
    raw: str = ''


@dataclass
class AddressedMessage:
    """Targets and body of an addressed multicast line."""
    targets: List[str] = field(default_factory=list)
    body: str = ''


# ============================================================================
# SERVER -> CLIENT
# ============================================================================

def create_submit_name_line() -> str:
    """Create a name request line."""
    return MessageTypes.SUBMIT_NAME


def create_name_accepted_line() -> str:
    """Create a name accepted line."""
    return MessageTypes.NAME_ACCEPTED


def create_message_line(sender: str, text: str) -> str:
    """Create a chat line as displayed by the client: MESSAGE <sender>: <text>."""
    return f"{MessageTypes.MESSAGE} {sender}: {text}"


def create_active_users_line(names: List[str]) -> str:
    """Create a roster line. An empty roster is a bare ACTIVEUSERS."""
    return MessageTypes.ACTIVE_USERS + ROSTER_SEPARATOR.join(names)


# ============================================================================
# CLIENT -> SERVER
# ============================================================================

def is_valid_name(name: Optional[str]) -> bool:
    """
    Check whether a submitted display name can be registered.

    Names must be non-blank and must not contain the roster separator or
    the multicast delimiter, otherwise rosters and addressed lines become
    ambiguous.
    """
    if not name or not name.strip():
        return False
    if ROSTER_SEPARATOR in name or MULTICAST_DELIMITER in name:
        return False
    return True


def split_addressed(line: str) -> Optional[AddressedMessage]:
    """
    Split an addressed multicast line.

    Returns None for a plain (broadcast) line. Otherwise the last segment is
    the body and every preceding segment is a target name, so 'a>>b>>hi'
    gives targets ['a', 'b'] and body 'hi'.

    A bare '>>' gives the single target '' with an empty body. No
    registered name is empty, so such a line reaches nobody, while 'bob>>'
    delivers an empty body to bob.
    """
    if MULTICAST_DELIMITER not in line:
        return None
    parts = line.split(MULTICAST_DELIMITER)
    return AddressedMessage(targets=parts[:-1], body=parts[-1])


def compose_outgoing(text: str, targets: Optional[List[str]] = None, broadcast: bool = False) -> str:
    """
    Build the line a client sends for user input.

    broadcast wins over any selection and strips the multicast notation so
    the line reaches everyone; otherwise selected targets are prefixed.
    """
    if broadcast:
        return text.replace(MULTICAST_DELIMITER, '')
    if targets:
        return MULTICAST_DELIMITER.join(list(targets) + [text])
    return text


# ============================================================================
# PARSING AND FRAMING
# ============================================================================

def parse_server_line(line: str) -> ServerLine:
    """Parse one server-to-client line into its kind and payload."""
    line = strip_line(line)

    if line.startswith(MessageTypes.SUBMIT_NAME):
        return ServerLine(MessageTypes.SUBMIT_NAME, '', line)
    if line.startswith(MessageTypes.NAME_ACCEPTED):
        return ServerLine(MessageTypes.NAME_ACCEPTED, '', line)
    if line.startswith(MessageTypes.MESSAGE + ' '):
        return ServerLine(MessageTypes.MESSAGE, line[len(MessageTypes.MESSAGE) + 1:], line)
    if line.startswith(MessageTypes.ACTIVE_USERS):
        roster = line[len(MessageTypes.ACTIVE_USERS):]
        names = [name for name in roster.split(ROSTER_SEPARATOR) if name]
        return ServerLine(MessageTypes.ACTIVE_USERS, names, line)

    return ServerLine(MessageTypes.UNKNOWN, line, line)


def encode_line(line: str) -> bytes:
    """Frame a line for the wire."""
    return (line + LINE_TERMINATOR).encode(ENCODING)


def decode_line(data: bytes) -> str:
    """Decode a received line, replacing invalid bytes and dropping the terminator."""
    return strip_line(data.decode(ENCODING, errors='replace'))


def strip_line(line: str) -> str:
    """Drop a trailing CRLF or LF, keeping any other whitespace."""
    if line.endswith('\r\n'):
        return line[:-2]
    if line.endswith('\n') or line.endswith('\r'):
        return line[:-1]
    return line
