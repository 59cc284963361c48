#!/usr/bin/env python3
"""
Chat Relay Client - Main Entry Point

Usage:
    python main_client.py [--host HOST] [--port PORT] [--username NAME] [--gui | --cli]

Modes:
    --gui        Launch with PyQt6 GUI (default)
    --cli        Launch in the terminal
"""

import argparse
import asyncio
import sys
import threading
from typing import Optional

from relay_common.constants import DEFAULT_HOST, DEFAULT_PORT
from relay_client.chat.chat_client import ChatClient, parse_terminal_input
from relay_client.utils.config import ClientConfig
from relay_client.utils.logger import logger


class TerminalChat:
    """Terminal front end: prints chat lines and sends what the user types."""

    def __init__(self, config: ClientConfig):
        self.config = config
        self.client = ChatClient(config)
        self.input_queue: Optional[asyncio.Queue] = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None

        self.client.set_name_provider(self.choose_name)
        self.client.set_message_handler(self.show_message)
        self.client.set_roster_handler(logger.show_roster)
        self.client.set_accepted_handler(self.on_joined)
        self.joined: Optional[asyncio.Event] = None

    def on_joined(self, name: str):
        logger.show_interactive_mode_info()
        self.joined.set()

    def _read_stdin(self):
        """Feed stdin lines to the event loop; None marks end of input."""
        for line in sys.stdin:
            self.loop.call_soon_threadsafe(self.input_queue.put_nowait, line.rstrip('\n'))
        self.loop.call_soon_threadsafe(self.input_queue.put_nowait, None)

    async def choose_name(self, attempt: int) -> Optional[str]:
        if attempt == 1 and self.config.username:
            return self.config.username
        if attempt > 1:
            print("That name is taken or invalid.")
        print("Choose a screen name: ", end='', flush=True)
        return await self.input_queue.get()

    @staticmethod
    def show_message(text: str):
        print(text)

    async def run(self):
        self.loop = asyncio.get_running_loop()
        self.input_queue = asyncio.Queue()
        self.joined = asyncio.Event()

        if not await self.client.connect():
            return 1

        threading.Thread(target=self._read_stdin, daemon=True).start()
        listener = asyncio.create_task(self.client.listen())

        try:
            # Until NAMEACCEPTED, typed lines belong to choose_name
            joined = asyncio.create_task(self.joined.wait())
            await asyncio.wait({listener, joined}, return_when=asyncio.FIRST_COMPLETED)
            joined.cancel()

            while not listener.done():
                getter = asyncio.create_task(self._next_chat_line())
                done, _ = await asyncio.wait({listener, getter}, return_when=asyncio.FIRST_COMPLETED)
                if getter not in done:
                    getter.cancel()
                    break
                if not getter.result():
                    break
        finally:
            await self.client.close()
            await listener
        return 0

    async def _next_chat_line(self) -> bool:
        """Handle one typed line once the name is accepted. False at end of input."""
        line = await self.input_queue.get()
        if line is None:
            return False

        command = parse_terminal_input(line)
        if command.kind == 'users':
            logger.show_roster(self.client.roster)
        elif self.client.accepted:
            await self.client.send_text(command.text, command.targets)
        return True


def run_gui_client(username: Optional[str] = None, server_host: Optional[str] = None,
                   server_port: Optional[int] = None) -> int:
    """Run the GUI client."""
    from relay_client.ui.client_gui import main as gui_main
    return gui_main(server_host, server_port, username)


def run_cli_client(username: Optional[str] = None, server_host: str = DEFAULT_HOST,
                   server_port: int = DEFAULT_PORT) -> int:
    """Run the terminal client."""
    config = ClientConfig(server_host, server_port, username)
    try:
        return asyncio.run(TerminalChat(config).run())
    except KeyboardInterrupt:
        print("\n[INFO] Interrupted by user")
        return 0


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Chat Relay Client')
    parser.add_argument('--host', type=str, default=None,
                        help=f'Server address (default: {DEFAULT_HOST}; the GUI asks when omitted)')
    parser.add_argument('--port', type=int, default=None,
                        help=f'Server port (default: {DEFAULT_PORT})')
    parser.add_argument('--username', type=str, default=None,
                        help='Screen name to submit first')
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--gui', action='store_true', help='Launch with PyQt6 GUI (default)')
    mode.add_argument('--cli', action='store_true', help='Launch in the terminal')

    args = parser.parse_args(argv)

    if args.cli:
        sys.exit(run_cli_client(args.username, args.host or DEFAULT_HOST, args.port or DEFAULT_PORT))
    sys.exit(run_gui_client(args.username, args.host, args.port))


if __name__ == "__main__":
    main()
