"""
Client registry module.

Maps every registered display name to its connection's outbound sink. The
registry is created once by the server and handed to every connection
handler; all of its operations share one lock so that registration,
removal, lookup and iteration are linearizable.
"""

import asyncio
from typing import Callable, Dict, List, Optional

from relay_common.protocol_definitions import create_active_users_line
from relay_server.chat.client_sink import ClientSink


class ClientRegistry:
    """Shared name -> sink table."""

    def __init__(self):
        self._clients: Dict[str, ClientSink] = {}  # insertion ordered, drives roster order
        self.lock = asyncio.Lock()

    async def try_register(self, name: str, sink: ClientSink) -> bool:
        """Insert name -> sink unless the name is taken. Returns False without mutating on collision."""
        async with self.lock:
            if name in self._clients:
                return False
            self._clients[name] = sink
            return True

    async def unregister(self, name: str):
        """Remove a name if present."""
        async with self.lock:
            self._clients.pop(name, None)

    async def snapshot(self) -> List[str]:
        """Point-in-time copy of the registered names in join order."""
        async with self.lock:
            return list(self._clients)

    async def lookup(self, name: str) -> Optional[ClientSink]:
        """Return the sink registered under name, or None."""
        async with self.lock:
            return self._clients.get(name)

    async def for_each(self, apply: Callable[[str, ClientSink], None]) -> int:
        """
        Call apply(name, sink) for every registered client.

        Runs under the registry lock, so apply must not await. Returns the
        number of clients visited.
        """
        async with self.lock:
            for name, sink in self._clients.items():
                apply(name, sink)
            return len(self._clients)

    async def broadcast_roster(self) -> int:
        """Send the current ACTIVEUSERS roster to every registered client."""
        async with self.lock:
            line = create_active_users_line(list(self._clients))
            for sink in self._clients.values():
                sink.send(line)
            return len(self._clients)

    async def send_to(self, names: List[str], line: str) -> List[str]:
        """
        Send line to each named client, once per occurrence in names.

        Unknown names are skipped; they are returned so the caller can
        report them.
        """
        missing = []
        async with self.lock:
            for name in names:
                sink = self._clients.get(name)
                if sink is None:
                    missing.append(name)
                else:
                    sink.send(line)
        return missing

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, name: str) -> bool:
        return name in self._clients
