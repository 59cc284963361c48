#!/usr/bin/env python3
"""
Chat Relay Server - Main Entry Point

Listens for chat clients, gives each accepted connection its own
ConnectionHandler task and wires the handlers to one shared ClientRegistry.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional, Set

from relay_common.constants import DEFAULT_SERVER_HOST, DEFAULT_PORT, LOG_DIR
from relay_server.chat.connection_handler import ConnectionHandler
from relay_server.chat.message_router import MessageRouter
from relay_server.chat.registry import ClientRegistry
from relay_server.utils.config import ServerConfig
from relay_server.utils.logger import logger


class ChatRelayServer:
    """Accepts connections and spawns one handler per client."""

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.registry = ClientRegistry()
        self.router = MessageRouter(self.registry, echo_addressed=self.config.echo_addressed)
        self.server: Optional[asyncio.AbstractServer] = None
        self.handlers: Set[ConnectionHandler] = set()

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Run a handler for one accepted connection; nothing it raises reaches the accept loop."""
        handler = ConnectionHandler(reader, writer, self.registry, self.router, self.config)
        self.handlers.add(handler)
        try:
            await handler.run()
        except asyncio.CancelledError:
            logger.info(f"Connection cancelled for {handler.addr}")
            raise
        except Exception as e:
            logger.log_error(f"handler for {handler.addr}", e)
        finally:
            self.handlers.discard(handler)

    async def start(self):
        """
        Bind the listening socket.

        Raises OSError when the address cannot be bound; no connection is
        accepted in that case.
        """
        self.server = await asyncio.start_server(
            self.handle_client,
            self.config.host,
            self.config.port,
            limit=self.config.max_line_length
        )

        addr = ', '.join(str(sock.getsockname()) for sock in self.server.sockets)
        logger.info(f"Chat relay listening on {addr}")

    async def serve_forever(self):
        """Bind (if needed) and accept connections until cancelled."""
        if self.server is None:
            await self.start()

        async with self.server:
            await self.server.serve_forever()

    async def stop(self):
        """Stop accepting connections."""
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()
            logger.info("Chat relay stopped accepting connections")

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually bound, useful when configured with port 0."""
        if self.server is None or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Chat Relay Server')
    parser.add_argument('--host', type=str, default=DEFAULT_SERVER_HOST,
                        help=f'Host to bind to (default: {DEFAULT_SERVER_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                        help=f'TCP port to listen on (default: {DEFAULT_PORT})')
    parser.add_argument('--logs-dir', type=str, default=LOG_DIR,
                        help=f'Directory for the chat history log (default: {LOG_DIR})')
    parser.add_argument('--idle-timeout', type=float, default=None,
                        help='Disconnect clients silent for this many seconds (default: never)')
    parser.add_argument('--echo-addressed', action='store_true',
                        help='Also show addressed messages to their sender')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging')
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    logger.configure(args.logs_dir, logging.DEBUG if args.debug else logging.INFO)

    config = ServerConfig(
        host=args.host,
        port=args.port,
        logs_dir=args.logs_dir,
        idle_timeout=args.idle_timeout,
        echo_addressed=args.echo_addressed
    )
    server = ChatRelayServer(config)

    try:
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        logger.info("Server shutting down...")
    except OSError as e:
        logger.log_error(f"binding {config.host}:{config.port}", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
