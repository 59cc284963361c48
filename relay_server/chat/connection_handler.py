"""
Connection handler module.

One ConnectionHandler services one client connection from accept to close:

    AWAITING_NAME -> ACTIVE -> CLOSED

The handler asks for a display name until a free one is submitted, then
relays every line the client types through the MessageRouter. Whatever ends
the connection (EOF, reset, over-long line, idle timeout), the handler
removes its name from the registry, tells the remaining clients and closes
the socket. Failures never leave the handler.
"""

import asyncio
from enum import Enum
from typing import Optional

from relay_common.protocol_definitions import (
    create_submit_name_line, create_name_accepted_line, decode_line, is_valid_name
)
from relay_server.chat.client_sink import ClientSink
from relay_server.chat.message_router import MessageRouter
from relay_server.chat.registry import ClientRegistry
from relay_server.utils.config import ServerConfig
from relay_server.utils.logger import logger


class HandlerState(Enum):
    AWAITING_NAME = 'awaiting_name'
    ACTIVE = 'active'
    CLOSED = 'closed'


class ConnectionHandler:
    """Per-connection protocol state machine."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                 registry: ClientRegistry, router: MessageRouter, config: Optional[ServerConfig] = None):
        self.reader = reader
        self.writer = writer
        self.registry = registry
        self.router = router
        self.config = config or ServerConfig()
        self.addr = writer.get_extra_info('peername')
        self.name: Optional[str] = None
        self.state = HandlerState.AWAITING_NAME
        self.sink: Optional[ClientSink] = None

    async def run(self):
        """Service the connection until it closes."""
        self.sink = ClientSink(
            self.writer,
            label=str(self.addr),
            flush_timeout=self.config.flush_timeout,
            queue_limit=self.config.outbound_queue_limit
        )
        logger.log_connection(self.addr)

        try:
            await self._negotiate_name()
            if self.state is HandlerState.ACTIVE:
                await self._relay_messages()
        except asyncio.TimeoutError:
            logger.info(f"Closing idle connection {self.addr} (name={self.name})")
        except ValueError as e:
            # StreamReader.readline raises ValueError when a line exceeds the reader limit
            logger.warning(f"Dropping {self.addr}: {e}")
        except (ConnectionError, OSError) as e:
            logger.debug(f"Connection fault on {self.addr}: {e}")
        finally:
            await self._close()

    async def _read_line(self) -> Optional[str]:
        """Next line from the client, or None at end of stream."""
        if self.config.idle_timeout:
            data = await asyncio.wait_for(self.reader.readline(), timeout=self.config.idle_timeout)
        else:
            data = await self.reader.readline()
        if not data:
            return None
        return decode_line(data)

    async def _negotiate_name(self):
        """AWAITING_NAME: request names until one registers or the client leaves."""
        while self.state is HandlerState.AWAITING_NAME:
            self.sink.send(create_submit_name_line())

            candidate = await self._read_line()
            if candidate is None:
                self.state = HandlerState.CLOSED
                return

            if not is_valid_name(candidate) or not await self.registry.try_register(candidate, self.sink):
                logger.log_name_rejected(candidate, self.addr)
                continue

            # Nothing awaits between registering and queueing NAMEACCEPTED,
            # so no routed line can reach this client ahead of it.
            self.name = candidate
            self.sink.send(create_name_accepted_line())
            self.state = HandlerState.ACTIVE
            logger.log_name_accepted(self.name, self.addr)

            await self.registry.broadcast_roster()

    async def _relay_messages(self):
        """ACTIVE: route every line the client sends."""
        while self.state is HandlerState.ACTIVE:
            line = await self._read_line()
            if line is None:
                return
            await self.router.route(self.name, line)

    async def _close(self):
        """CLOSED: deregister, announce the new roster and close the connection."""
        self.state = HandlerState.CLOSED

        if self.name is not None:
            await self.registry.unregister(self.name)
            await self.registry.broadcast_roster()

        if self.sink is not None:
            await self.sink.close()

        logger.log_disconnect(self.name, self.addr)
