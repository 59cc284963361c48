"""
Outbound sink for one client connection.

Any handler may route a line to any client, so writes to a connection are
funnelled through a queue that exactly one writer task drains. Lines from
concurrent senders are therefore written whole and in enqueue order.

A client that stops reading cannot hold the server hostage: when its queue
reaches its limit, or when closing cannot flush within flush_timeout, the
connection is aborted. The client's handler then sees end of stream and
cleans up as usual.
"""

import asyncio
from typing import Optional

from relay_common.constants import FLUSH_TIMEOUT, OUTBOUND_QUEUE_LIMIT
from relay_common.protocol_definitions import encode_line
from relay_server.utils.logger import logger


class ClientSink:
    """Single-writer outbound queue bound to a StreamWriter."""

    _CLOSE = object()

    def __init__(self, writer: asyncio.StreamWriter, label: str = '', flush_timeout: float = FLUSH_TIMEOUT,
                 queue_limit: int = OUTBOUND_QUEUE_LIMIT):
        self.writer = writer
        self.label = label
        self.flush_timeout = flush_timeout
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_limit)
        self.closed = False
        self.aborted = False
        self._writer_task: Optional[asyncio.Task] = asyncio.create_task(self._drain_queue())

    def send(self, line: str) -> bool:
        """
        Enqueue one line for delivery.

        Never blocks and never raises; returns False when the line was
        dropped because the sink is closed or the client fell too far behind.
        """
        if self.closed:
            return False
        try:
            self.queue.put_nowait(line)
        except asyncio.QueueFull:
            logger.warning(f"Outbound queue for {self.label} is full ({self.queue.maxsize} lines), disconnecting")
            self.abort()
            return False
        return True

    async def _drain_queue(self):
        """Write queued lines to the connection until closed or the write fails."""
        while True:
            line = await self.queue.get()
            if line is self._CLOSE:
                break
            try:
                self.writer.write(encode_line(line))
                await self.writer.drain()
            except (ConnectionError, OSError) as e:
                logger.debug(f"Write to {self.label} failed: {e}")
                self.closed = True
                break

    def abort(self):
        """Drop pending lines and tear the connection down without flushing."""
        self.closed = True
        self.aborted = True

        task, self._writer_task = self._writer_task, None
        if task is not None and not task.done():
            task.cancel()

        transport = self.writer.transport
        if transport is not None:
            transport.abort()

    async def close(self):
        """
        Flush pending lines, stop the writer task and close the connection.

        Gives up after flush_timeout and aborts instead, so this always
        returns. Safe to call twice.
        """
        if not self.closed:
            self.closed = True
            try:
                self.queue.put_nowait(self._CLOSE)
            except asyncio.QueueFull:
                self.abort()

        task, self._writer_task = self._writer_task, None
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(task, timeout=self.flush_timeout)
            except asyncio.TimeoutError:
                logger.debug(f"Gave up flushing {self.label} after {self.flush_timeout}s")
                self.abort()

        if self.aborted:
            return

        try:
            self.writer.close()
            await asyncio.wait_for(self.writer.wait_closed(), timeout=self.flush_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"{self.label} did not close within {self.flush_timeout}s, aborting")
            self.abort()
        except (ConnectionError, OSError):
            pass
