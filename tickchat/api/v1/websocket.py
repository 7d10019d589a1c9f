import json
import logging
from typing import Optional
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, Query

from tickchat.database import AsyncSessionLocal
from tickchat.repositories.message_repository import MessageRepository
from tickchat.schemas.message import serialize_message
from tickchat.websocket_manager import ConnectionManager
from tickchat.dependencies import get_connection_manager
from tickchat.events import MESSAGE_SEEN_EVENT
from tickchat.config import settings
from tickchat.repositories.user_repository import UserRepository
from tickchat.security import decode_access_token
from tickchat.errors import ChatError

logger = logging.getLogger(__name__)

router = APIRouter()

async def resolve_user_id(token: Optional[str], claimed_user_id: Optional[str]) -> Optional[str]:
    """Identity of the connecting user: a verified token, or a bare claim when allowed."""
    if token:
        username = decode_access_token(token)
        if username is None:
            return None
        async with AsyncSessionLocal() as db:
            user = await UserRepository(db).get_by_username(username)
        if user is None or not user.is_active:
            return None
        return user.id

    if claimed_user_id and settings.WS_ALLOW_CLAIMED_IDENTITY:
        return claimed_user_id
    return None

async def send_error(websocket: WebSocket, message: str):
    await websocket.send_text(json.dumps({"type": "error", "message": message}))

@router.websocket("/chat")
async def websocket_chat(
    websocket: WebSocket,
    token: Optional[str] = None,
    claimed_user_id: Optional[str] = Query(None, alias="userId"),
    manager: ConnectionManager = Depends(get_connection_manager)
):
    user_id = await resolve_user_id(token, claimed_user_id)
    if user_id is None:
        await websocket.close(code=1008, reason="Valid token required")
        return

    connection_id = await manager.connect(websocket, user_id)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message_data = json.loads(data)
            except json.JSONDecodeError:
                await send_error(websocket, "Invalid JSON format")
                continue
            if not isinstance(message_data, dict):
                await send_error(websocket, "Invalid message format")
                continue

            action = message_data.get("action")
            payload = message_data.get("data") or {}
            await handle_websocket_message(websocket, action, payload, user_id, manager)

    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(connection_id, user_id)

async def handle_websocket_message(websocket: WebSocket, action: str, payload: dict, user_id: str, manager: ConnectionManager):
    if action == MESSAGE_SEEN_EVENT:
        await handle_seen_hint(websocket, payload, user_id, manager)

    elif action == "ping":
        await websocket.send_text(json.dumps({"type": "pong"}))

    else:
        await send_error(websocket, f"Unknown action: {action}")

async def handle_seen_hint(websocket: WebSocket, payload: dict, user_id: str, manager: ConnectionManager):
    """Relay a receiver's seen hint to the sender; the store is not touched."""
    message_id = payload.get("id") if isinstance(payload, dict) else None
    if not message_id:
        await send_error(websocket, "messageSeen requires a message id")
        return

    try:
        async with AsyncSessionLocal() as db:
            message = await MessageRepository(db).get_by_id(str(message_id))
    except ChatError as e:
        logger.warning("Could not check seen hint for %s: %s", message_id, e.detail)
        await send_error(websocket, "Failed to process messageSeen")
        return

    # Only the receiver's hint counts, and only once the store agrees
    if message is None or message.receiver_id != user_id or not message.seen:
        logger.debug("Ignoring seen hint for %s from %s", message_id, user_id)
        return

    await manager.send_to_user(message.sender_id, MESSAGE_SEEN_EVENT, serialize_message(message))

@router.get("/online-users")
async def get_online_users(manager: ConnectionManager = Depends(get_connection_manager)):
    """Получение списка подключенных пользователей"""
    connected_users = manager.get_connected_users()
    return {"online_users": connected_users, "count": len(connected_users)}
