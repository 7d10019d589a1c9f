import json
import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

from tickchat.config import settings
from tickchat.events import ONLINE_USERS_EVENT
from tickchat.presence import PresenceRegistry

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self, registry: PresenceRegistry, push_timeout: Optional[float] = None):
        self.registry = registry
        self.active_connections: Dict[str, WebSocket] = {}
        self.push_timeout = push_timeout if push_timeout is not None else settings.PUSH_TIMEOUT_SECONDS

    async def connect(self, websocket: WebSocket, user_id: str) -> str:
        await websocket.accept()

        connection_id = uuid.uuid4().hex
        self.active_connections[connection_id] = websocket
        self.registry.register(user_id, connection_id)
        logger.info("User %s connected (%s)", user_id, connection_id)

        await self.broadcast_online_users()
        return connection_id

    async def disconnect(self, connection_id: str, user_id: str):
        self.active_connections.pop(connection_id, None)

        if self.registry.unregister(user_id, connection_id):
            logger.info("User %s disconnected (%s)", user_id, connection_id)
            # Runs to completion even when the socket handler is being cancelled
            await asyncio.shield(self.broadcast_online_users())
        else:
            logger.info("Stale connection %s of user %s closed", connection_id, user_id)

    async def send(self, connection_id: str, event: str, payload: Any) -> bool:
        """Push one event; never raises. Returns False when the push was dropped."""
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            logger.debug("Dropping %s: connection %s is gone", event, connection_id)
            return False

        message = json.dumps({"type": event, "data": payload})
        try:
            await asyncio.wait_for(websocket.send_text(message), timeout=self.push_timeout)
        except asyncio.TimeoutError:
            logger.warning("Push of %s to %s timed out after %ss", event, connection_id, self.push_timeout)
            return False
        except Exception as e:
            logger.debug("Push of %s to %s failed: %s", event, connection_id, e)
            self.active_connections.pop(connection_id, None)
            return False
        return True

    async def send_to_user(self, user_id: str, event: str, payload: Any) -> bool:
        connection_id = self.registry.lookup(user_id)
        if connection_id is None:
            return False
        return await self.send(connection_id, event, payload)

    async def broadcast(self, event: str, payload: Any):
        connection_ids = list(self.active_connections.keys())
        await asyncio.gather(*(self.send(connection_id, event, payload) for connection_id in connection_ids))

    async def broadcast_online_users(self):
        await self.broadcast(ONLINE_USERS_EVENT, self.registry.list_online())

    async def close_all(self, code: int = 1001):
        connections = list(self.active_connections.values())
        self.active_connections.clear()
        for websocket in connections:
            try:
                await websocket.close(code=code)
            except Exception as e:
                logger.debug("Error closing websocket during shutdown: %s", e)
        self.registry.clear()

    def get_connected_users(self) -> List[str]:
        return self.registry.list_online()

    def is_user_online(self, user_id: str) -> bool:
        return self.registry.is_online(user_id)
