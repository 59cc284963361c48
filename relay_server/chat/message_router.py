"""
Message routing module.

Decides who receives a line typed by an active client:

- a plain line goes to every registered client, sender included
- 'a>>b>>text' goes to clients a and b only, carrying just 'text'
"""

from relay_common.protocol_definitions import create_message_line, split_addressed
from relay_server.chat.registry import ClientRegistry
from relay_server.utils.logger import logger


class MessageRouter:
    """Routes content lines through the client registry."""

    def __init__(self, registry: ClientRegistry, echo_addressed: bool = False):
        self.registry = registry
        self.echo_addressed = echo_addressed

    async def route(self, sender: str, line: str) -> int:
        """Deliver a line from sender. Returns the number of lines enqueued."""
        addressed = split_addressed(line)
        if addressed is None:
            return await self.broadcast(sender, line)
        return await self.multicast(sender, addressed.targets, addressed.body)

    async def broadcast(self, sender: str, text: str) -> int:
        """Send text to everyone currently registered."""
        outgoing = create_message_line(sender, text)
        count = await self.registry.for_each(lambda name, sink: sink.send(outgoing))
        logger.log_broadcast(sender, text, count)
        return count

    async def multicast(self, sender: str, targets: list, body: str) -> int:
        """Send body to each registered target; unknown targets are skipped."""
        outgoing = create_message_line(sender, body)
        recipients = list(targets)
        if self.echo_addressed and sender not in recipients:
            recipients.append(sender)

        missing = await self.registry.send_to(recipients, outgoing)
        for target in missing:
            logger.log_unknown_recipient(sender, target)

        delivered = len(recipients) - len(missing)
        logger.log_multicast(sender, targets, body, delivered)
        return delivered
