#!/usr/bin/env python3
"""
End-to-end tests for ChatRelayServer over real TCP connections.

Each test starts a server on an ephemeral port on 127.0.0.1 and talks to
it with plain asyncio streams, exactly like a client would.
"""

import asyncio
import socket
import tempfile
import unittest
from typing import Optional
from unittest.mock import patch

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from relay_server.main_server import ChatRelayServer, main
from relay_server.utils.config import ServerConfig
from relay_server.utils.logger import logger

READ_TIMEOUT = 2.0


class ChatConnection:
    """Minimal line client used by the tests."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer

    @classmethod
    async def open(cls, port: int) -> 'ChatConnection':
        reader, writer = await asyncio.open_connection('127.0.0.1', port)
        return cls(reader, writer)

    async def read_line(self) -> str:
        data = await asyncio.wait_for(self.reader.readline(), timeout=READ_TIMEOUT)
        return data.decode('utf-8').rstrip('\n')

    async def read_until(self, prefix: str) -> str:
        """Skip lines until one starts with prefix."""
        while True:
            line = await self.read_line()
            if line.startswith(prefix):
                return line

    async def send(self, line: str):
        self.writer.write((line + '\n').encode('utf-8'))
        await self.writer.drain()

    async def close(self):
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            pass


class ServerTestCase(unittest.IsolatedAsyncioTestCase):
    """Starts a ChatRelayServer on a free port for every test."""

    async def asyncSetUp(self):
        file_patch = patch.object(logger, '_write_to_file')
        file_patch.start()
        self.addCleanup(file_patch.stop)

        self.server = ChatRelayServer(self.make_config())
        await self.server.start()
        self.port = self.server.bound_port
        self.serve_task = asyncio.create_task(self.server.serve_forever())
        self.connections = []

    async def asyncTearDown(self):
        for connection in self.connections:
            await connection.close()
        await self.server.stop()
        self.serve_task.cancel()
        try:
            await self.serve_task
        except asyncio.CancelledError:
            pass

    def make_config(self) -> ServerConfig:
        return ServerConfig(host='127.0.0.1', port=0)

    async def connect(self) -> ChatConnection:
        connection = await ChatConnection.open(self.port)
        self.connections.append(connection)
        return connection

    async def join(self, name: str, connection: Optional[ChatConnection] = None) -> ChatConnection:
        """Connect (unless given a connection) and register name, consuming the handshake lines."""
        if connection is None:
            connection = await self.connect()
        self.assertEqual(await connection.read_line(), "SUBMITNAME")
        await connection.send(name)
        self.assertEqual(await connection.read_line(), "NAMEACCEPTED")
        return connection

    async def wait_for_roster(self, expected):
        """Wait until the registry holds exactly the expected names."""
        for _ in range(200):
            if await self.server.registry.snapshot() == expected:
                return
            await asyncio.sleep(0.01)
        self.fail(f"registry never became {expected}")


class TestRoundTrip(ServerTestCase):

    async def test_full_session(self):
        alice = await self.join("alice")
        self.assertEqual(await alice.read_line(), "ACTIVEUSERSalice")

        bob = await self.join("bob")
        self.assertEqual(await bob.read_line(), "ACTIVEUSERSalice:bob")
        self.assertEqual(await alice.read_line(), "ACTIVEUSERSalice:bob")

        await alice.send("hi")
        self.assertEqual(await alice.read_line(), "MESSAGE alice: hi")
        self.assertEqual(await bob.read_line(), "MESSAGE alice: hi")

        await alice.send("bob>>secret")
        await alice.send("done")
        self.assertEqual(await bob.read_line(), "MESSAGE alice: secret")
        self.assertEqual(await bob.read_line(), "MESSAGE alice: done")
        # alice never got her addressed line back
        self.assertEqual(await alice.read_line(), "MESSAGE alice: done")


class TestNameNegotiation(ServerTestCase):

    async def test_taken_name_gets_submitname_again(self):
        await self.join("alice")
        other = await self.connect()

        self.assertEqual(await other.read_line(), "SUBMITNAME")
        await other.send("alice")
        self.assertEqual(await other.read_line(), "SUBMITNAME")
        await other.send("alice2")
        self.assertEqual(await other.read_line(), "NAMEACCEPTED")
        self.assertEqual(await other.read_line(), "ACTIVEUSERSalice:alice2")

    async def test_concurrent_submissions_have_one_winner(self):
        contenders = [await self.connect() for _ in range(5)]
        for connection in contenders:
            self.assertEqual(await connection.read_line(), "SUBMITNAME")

        await asyncio.gather(*(connection.send("carol") for connection in contenders))
        replies = await asyncio.gather(*(connection.read_line() for connection in contenders))

        self.assertEqual(replies.count("NAMEACCEPTED"), 1)
        self.assertEqual(replies.count("SUBMITNAME"), 4)
        self.assertEqual(await self.server.registry.snapshot(), ["carol"])

    async def test_disconnect_before_name_leaves_no_trace(self):
        watcher = await self.join("watcher")
        self.assertEqual(await watcher.read_line(), "ACTIVEUSERSwatcher")

        quitter = await self.connect()
        self.assertEqual(await quitter.read_line(), "SUBMITNAME")
        await quitter.close()

        # The next line the watcher sees is its own chat, not a roster change
        await watcher.send("still here")
        self.assertEqual(await watcher.read_line(), "MESSAGE watcher: still here")


class TestRouting(ServerTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.alice = await self.join("alice")
        self.bob = await self.join("bob")
        self.carol = await self.join("carol")
        for connection in (self.alice, self.bob, self.carol):
            await connection.read_until("ACTIVEUSERSalice:bob:carol")

    async def test_broadcast_fan_out(self):
        await self.alice.send("hello")
        for connection in (self.alice, self.bob, self.carol):
            self.assertEqual(await connection.read_line(), "MESSAGE alice: hello")

    async def test_addressed_delivery(self):
        await self.alice.send("bob>>hello")
        await self.alice.send("marker")

        self.assertEqual(await self.bob.read_line(), "MESSAGE alice: hello")
        self.assertEqual(await self.carol.read_line(), "MESSAGE alice: marker")

    async def test_unknown_target_is_a_noop(self):
        await self.alice.send("Ghost>>hi")
        await self.alice.send("still active")

        self.assertEqual(await self.alice.read_line(), "MESSAGE alice: still active")
        self.assertIn("alice", self.server.registry)

    async def test_clean_disconnect_updates_roster(self):
        await self.bob.close()

        self.assertEqual(await self.alice.read_line(), "ACTIVEUSERSalice:carol")
        self.assertEqual(await self.carol.read_line(), "ACTIVEUSERSalice:carol")

        await self.alice.send("bye bob")
        self.assertEqual(await self.carol.read_line(), "MESSAGE alice: bye bob")
        self.assertNotIn("bob", self.server.registry)

    async def test_abrupt_disconnect_updates_roster(self):
        self.bob.writer.transport.abort()

        self.assertEqual(await self.alice.read_line(), "ACTIVEUSERSalice:carol")
        self.assertEqual(await self.carol.read_line(), "ACTIVEUSERSalice:carol")
        await self.wait_for_roster(["alice", "carol"])

    async def test_roster_matches_registry_after_churn(self):
        await self.bob.close()
        dave = await self.join("dave")
        await self.carol.close()

        expected = "ACTIVEUSERSalice:dave"
        self.assertEqual(await self.alice.read_until(expected), expected)
        self.assertEqual(await dave.read_until(expected), expected)
        await self.wait_for_roster(["alice", "dave"])

    async def test_server_keeps_accepting_after_client_failure(self):
        self.bob.writer.transport.abort()
        await self.alice.read_until("ACTIVEUSERSalice:carol")

        erin = await self.join("erin")
        self.assertEqual(await erin.read_line(), "ACTIVEUSERSalice:carol:erin")


class SlowClientTestCase(ServerTestCase):
    """Helpers for clients that stop reading."""

    QUEUE_LIMIT = 1000
    FILLER = "x" * 60000

    def make_config(self) -> ServerConfig:
        return ServerConfig(host='127.0.0.1', port=0, flush_timeout=0.2, outbound_queue_limit=self.QUEUE_LIMIT)

    async def join_without_reading(self, name: str) -> ChatConnection:
        """Register a client whose socket buffers fill quickly once it stops reading."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, 4096)
        sock.setblocking(False)
        await asyncio.get_running_loop().sock_connect(sock, ('127.0.0.1', self.port))
        reader, writer = await asyncio.open_connection(sock=sock, limit=4096)
        connection = ChatConnection(reader, writer)
        self.connections.append(connection)
        await self.join(name, connection)

        handler = self.handler_for(name)
        handler.writer.get_extra_info('socket').setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, 4096)
        return connection

    def handler_for(self, name: str):
        for handler in self.server.handlers:
            if handler.name == name:
                return handler
        return None

    async def flood(self, sender: ChatConnection, target: str, lines: int = 200):
        """Send addressed filler until the target's outbound queue backs up."""
        handler = self.handler_for(target)
        for _ in range(lines):
            await sender.send(f"{target}>>{self.FILLER}")
            if handler.sink.closed or handler.sink.queue.qsize() > 0:
                return
        self.fail(f"outbound queue for {target} never backed up")

    async def wait_for_handler_exit(self, name: str):
        for _ in range(500):
            if self.handler_for(name) is None:
                return
            await asyncio.sleep(0.01)
        self.fail(f"handler for {name} never finished")


class TestSlowClients(SlowClientTestCase):
    """Clients that stop reading must not pin their handlers."""

    async def test_peer_that_sent_eof_but_never_reads_is_released(self):
        stall = await self.join_without_reading("stall")
        flooder = await self.join("flooder")
        await flooder.read_until("ACTIVEUSERSstall:flooder")

        await self.flood(flooder, "stall")
        stall.writer.write_eof()

        await self.wait_for_handler_exit("stall")
        self.assertEqual(await flooder.read_until("ACTIVEUSERSflooder"), "ACTIVEUSERSflooder")
        await self.wait_for_roster(["flooder"])


class TestOutboundQueueLimit(SlowClientTestCase):

    QUEUE_LIMIT = 5

    async def test_overflowing_client_is_disconnected(self):
        await self.join_without_reading("stall")
        flooder = await self.join("flooder")
        await flooder.read_until("ACTIVEUSERSstall:flooder")

        for _ in range(200):
            await flooder.send(f"stall>>{self.FILLER}")
            if self.handler_for("stall") is None:
                break

        await self.wait_for_handler_exit("stall")
        self.assertEqual(await flooder.read_until("ACTIVEUSERSflooder"), "ACTIVEUSERSflooder")
        await self.wait_for_roster(["flooder"])

        # The sender is unaffected
        await flooder.send("still here")
        self.assertEqual(await flooder.read_line(), "MESSAGE flooder: still here")


class TestBindFailure(unittest.IsolatedAsyncioTestCase):

    async def test_start_raises_when_port_in_use(self):
        first = ChatRelayServer(ServerConfig(host='127.0.0.1', port=0))
        await first.start()
        try:
            second = ChatRelayServer(ServerConfig(host='127.0.0.1', port=first.bound_port))
            with self.assertRaises(OSError):
                await second.start()
            self.assertIsNone(second.bound_port)
        finally:
            await first.stop()


class TestMainExitStatus(unittest.TestCase):

    def test_main_exits_non_zero_when_port_in_use(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker, \
                tempfile.TemporaryDirectory() as logs_dir:
            blocker.bind(('127.0.0.1', 0))
            blocker.listen()
            port = blocker.getsockname()[1]

            with self.assertRaises(SystemExit) as ctx:
                main(['--host', '127.0.0.1', '--port', str(port), '--logs-dir', logs_dir])

        self.assertEqual(ctx.exception.code, 1)


if __name__ == '__main__':
    unittest.main()
