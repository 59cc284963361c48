"""
Chat client module.

This module handles the client side of the relay protocol: connecting,
answering name requests, and turning server lines into callbacks.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Union

from relay_common.constants import MessageTypes, RECONNECT_DELAY_BASE
from relay_common.protocol_definitions import (
    compose_outgoing, decode_line, encode_line, parse_server_line
)
from relay_client.utils.config import ClientConfig
from relay_client.utils.logger import logger

NameProvider = Callable[[int], Union[Optional[str], Awaitable[Optional[str]]]]


class ChatClient:
    """Client-side chat functionality."""

    def __init__(self, config: Optional[ClientConfig] = None):
        self.config = config or ClientConfig()
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.name: Optional[str] = None
        self.accepted = False
        self.roster: List[str] = []
        self._name_attempts = 0
        self._pending_name: Optional[str] = None

        self.name_provider: Optional[NameProvider] = None
        self.message_handler: Optional[Callable[[str], None]] = None
        self.roster_handler: Optional[Callable[[List[str]], None]] = None
        self.accepted_handler: Optional[Callable[[str], None]] = None

    def set_name_provider(self, provider: NameProvider):
        """
        Set the callback asked for a display name on every SUBMITNAME.

        It receives the attempt number (1 for the first request) and returns
        the name to submit, or None to give up and disconnect.
        """
        self.name_provider = provider

    def set_message_handler(self, handler: Callable[[str], None]):
        """Set the handler for chat lines (the text after 'MESSAGE ')."""
        self.message_handler = handler

    def set_roster_handler(self, handler: Callable[[List[str]], None]):
        """Set the handler for active user list replacements."""
        self.roster_handler = handler

    def set_accepted_handler(self, handler: Callable[[str], None]):
        """Set the handler called once the server accepts our name."""
        self.accepted_handler = handler

    async def connect(self, retry_count: Optional[int] = None, base_delay: float = RECONNECT_DELAY_BASE) -> bool:
        """Establish connection to the server with retry logic and exponential backoff."""
        retry_count = retry_count or self.config.retry_attempts
        attempt = 0

        while attempt < retry_count:
            try:
                self.reader, self.writer = await asyncio.wait_for(
                    asyncio.open_connection(self.config.host, self.config.port),
                    timeout=self.config.connect_timeout
                )
                logger.log_connection(self.config.host, self.config.port, True)
                return True
            except (OSError, asyncio.TimeoutError) as e:
                attempt += 1
                logger.log_connection(self.config.host, self.config.port, False)
                logger.log_error("connection", e)

                if attempt < retry_count:
                    delay = base_delay * (2 ** (attempt - 1))
                    logger.info(f"[INFO] Retrying connection in {delay}s (attempt {attempt}/{retry_count})...")
                    await asyncio.sleep(delay)

        logger.error(f"[ERROR] Failed to connect after {retry_count} attempts")
        return False

    async def send_line(self, line: str) -> bool:
        """Send one protocol line to the server."""
        if not self.writer:
            logger.error("[ERROR] Not connected to server")
            return False

        try:
            self.writer.write(encode_line(line))
            await self.writer.drain()
            return True
        except (ConnectionError, OSError) as e:
            logger.log_error("send", e)
            return False

    async def send_text(self, text: str, targets: Optional[List[str]] = None, broadcast: bool = False) -> bool:
        """Send user input, addressed to targets when given."""
        if not self.accepted:
            logger.warning("[WARNING] Cannot chat before the server accepts a name")
            return False
        return await self.send_line(compose_outgoing(text, targets, broadcast))

    async def listen(self):
        """Read server lines until the connection closes."""
        try:
            while True:
                data = await self.reader.readline()
                if not data:
                    logger.info("[INFO] Server closed connection")
                    break
                if not await self.handle_line(decode_line(data)):
                    break
        except (ConnectionError, OSError) as e:
            logger.log_error("listen", e)
        finally:
            await self.close()

    async def handle_line(self, line: str) -> bool:
        """
        Dispatch one server line. Returns False when the session should end
        (the name provider gave up).
        """
        message = parse_server_line(line)

        if message.kind == MessageTypes.SUBMIT_NAME:
            return await self._answer_name_request()
        elif message.kind == MessageTypes.NAME_ACCEPTED:
            self._accept_name()
        elif message.kind == MessageTypes.MESSAGE:
            self._dispatch(self.message_handler, message.payload)
        elif message.kind == MessageTypes.ACTIVE_USERS:
            self.roster = list(message.payload)
            self._dispatch(self.roster_handler, self.roster)
        else:
            logger.debug(f"Ignoring unknown server line: {message.raw!r}")
        return True

    async def _answer_name_request(self) -> bool:
        self._name_attempts += 1
        name = None
        if self.name_provider is not None:
            name = self.name_provider(self._name_attempts)
            if inspect.isawaitable(name):
                name = await name
        if name is None:
            logger.info("[INFO] No name chosen, leaving")
            return False

        self._pending_name = name
        logger.log_name_submitted(name)
        return await self.send_line(name)

    def _accept_name(self):
        self.name = self._pending_name
        self.accepted = True
        logger.log_name_accepted(self.name)
        self._dispatch(self.accepted_handler, self.name)

    @staticmethod
    def _dispatch(handler, payload):
        if handler is not None:
            handler(payload)

    async def close(self):
        """Close the connection."""
        self.accepted = False
        if self.writer is None:
            return
        writer, self.writer = self.writer, None
        try:
            writer.close()
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass


@dataclass
class TerminalInput:
    """A line typed in the terminal client."""
    kind: str  # 'chat' or 'users'
    text: str = ''
    targets: List[str] = field(default_factory=list)


def parse_terminal_input(text: str) -> TerminalInput:
    """
    Interpret a terminal input line.

    '@alice,bob hello' addresses alice and bob, '/users' shows the roster,
    anything else is sent as typed.
    """
    if text.strip() == '/users':
        return TerminalInput('users')
    if text.startswith('@') and ' ' in text:
        head, body = text[1:].split(' ', 1)
        targets = [name for name in head.split(',') if name]
        if targets:
            return TerminalInput('chat', body, targets)
    return TerminalInput('chat', text)
