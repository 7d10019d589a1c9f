"""Bridges message-store writes to live push events.

Every push happens after the corresponding write has been committed and is
best-effort: a receiver that is offline, or whose socket fails mid-send,
simply picks the change up on the next history fetch.
"""
import asyncio
import logging
from typing import Sequence

from tickchat.events import NEW_MESSAGE_EVENT, MESSAGE_SEEN_EVENT
from tickchat.models.message import Message
from tickchat.repositories.message_repository import MessageRepository
from tickchat.schemas.message import serialize_message
from tickchat.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)


class DeliveryRouter:
    def __init__(self, connections: ConnectionManager):
        self.connections = connections
        self.registry = connections.registry

    async def on_message_created(self, message: Message) -> bool:
        """Push ``newMessage`` to the receiver if they are online."""
        connection_id = self.registry.lookup(message.receiver_id)
        if connection_id is None:
            logger.debug("Receiver %s offline; message %s left for history fetch", message.receiver_id, message.id)
            return False

        await self.connections.send(connection_id, NEW_MESSAGE_EVENT, serialize_message(message))
        return True

    async def on_messages_marked_seen(
        self,
        message_ids: Sequence[str],
        repository: MessageRepository,
        reader_id: str,
    ) -> int:
        """Fan ``messageSeen`` out to both parties of every message the reader just saw.

        Returns the number of messages announced.
        """
        messages = [
            message
            for message in await repository.get_by_ids(message_ids)
            if message.receiver_id == reader_id and message.seen
        ]

        pushes = []
        for message in messages:
            payload = serialize_message(message)
            for user_id in {message.receiver_id, message.sender_id}:
                pushes.append(self.connections.send_to_user(user_id, MESSAGE_SEEN_EVENT, payload))
        await asyncio.gather(*pushes)
        return len(messages)
