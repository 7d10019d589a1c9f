"""Client-side synchronization for one connected chat user.

The controller keeps the open conversation in memory, loads it over REST and
follows the live connection for new messages and seen receipts. Seen state is
two-phase: a message flipped locally before the server confirmed it stays
``PENDING`` until a ``messageSeen`` push or the next history fetch settles it.
"""
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from urllib.parse import urlencode

import httpx
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from tickchat.events import MESSAGE_SEEN_EVENT, NEW_MESSAGE_EVENT, ONLINE_USERS_EVENT

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class SeenState(str, Enum):
    UNSEEN = "unseen"
    PENDING = "pending"
    CONFIRMED = "confirmed"


class ChatClientError(Exception):
    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


@dataclass
class LocalMessage:
    id: str
    sender_id: str
    receiver_id: str
    text: str = ""
    image: Optional[str] = None
    document: Optional[str] = None
    created_at: Optional[str] = None
    seen_state: SeenState = SeenState.UNSEEN

    @property
    def seen(self) -> bool:
        return self.seen_state is not SeenState.UNSEEN

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "LocalMessage":
        return cls(
            id=payload["id"],
            sender_id=payload["senderId"],
            receiver_id=payload["receiverId"],
            text=payload.get("text") or "",
            image=payload.get("image"),
            document=payload.get("document"),
            created_at=payload.get("createdAt"),
            seen_state=SeenState.CONFIRMED if payload.get("seen") else SeenState.UNSEEN,
        )


def build_ws_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/api/v1/ws/chat?{urlencode({'token': token})}"


Handler = Callable[[Any], Awaitable[None]]


class ChatSyncController:
    def __init__(
        self,
        http: httpx.AsyncClient,
        user_id: str,
        ws_url: str,
        connector: Optional[Callable[[str], Awaitable[Any]]] = None,
        api_prefix: str = "/api/v1",
    ):
        self.http = http
        self.user_id = user_id
        self.ws_url = ws_url
        self.api_prefix = api_prefix.rstrip("/")
        self._connector = connector or websockets.connect
        self._connection = None
        self._handlers: Dict[str, Handler] = {}

        self.state = ConnectionState.DISCONNECTED
        self.selected_peer: Optional[str] = None
        self.messages: List[LocalMessage] = []
        self.online_users: Set[str] = set()

    # -- live connection -------------------------------------------------

    async def connect(self):
        if self.state is not ConnectionState.DISCONNECTED:
            return
        self.state = ConnectionState.CONNECTING
        try:
            self._connection = await self._connector(self.ws_url)
        except (OSError, WebSocketException) as e:
            self.state = ConnectionState.DISCONNECTED
            raise ChatClientError(f"Could not open live connection: {e}") from e
        self.state = ConnectionState.CONNECTED
        logger.info("User %s connected", self.user_id)

    async def close(self):
        self.unsubscribe()
        connection, self._connection = self._connection, None
        self.state = ConnectionState.DISCONNECTED
        if connection is not None:
            await connection.close()

    async def run(self):
        """Dispatch incoming frames until the live connection ends."""
        connection = self._connection
        if connection is None:
            raise ChatClientError("Not connected")
        try:
            async for raw in connection:
                await self.handle_frame(raw)
        except ConnectionClosed as e:
            logger.info("Live connection closed: %s", e)
        finally:
            self._connection = None
            self.state = ConnectionState.DISCONNECTED
            await connection.close()

    async def handle_frame(self, raw):
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed frame: %r", raw)
            return
        if not isinstance(frame, dict):
            logger.warning("Ignoring non-object frame: %r", raw)
            return

        event = frame.get("type")
        data = frame.get("data")
        if event == ONLINE_USERS_EVENT:
            self.online_users = set(data) if isinstance(data, list) else set()
            return

        handler = self._handlers.get(event)
        if handler is not None:
            await handler(data)
        elif event == "error":
            logger.warning("Server reported: %s", frame.get("message"))

    async def _emit(self, action: str, data: Any):
        if self._connection is None or self.state is not ConnectionState.CONNECTED:
            return
        try:
            await self._connection.send(json.dumps({"action": action, "data": data}))
        except ConnectionClosed:
            self._connection = None
            self.state = ConnectionState.DISCONNECTED

    # -- push handlers ---------------------------------------------------

    def subscribe(self):
        self._handlers = {
            NEW_MESSAGE_EVENT: self._on_new_message,
            MESSAGE_SEEN_EVENT: self._on_message_seen,
        }

    def unsubscribe(self):
        self._handlers = {}

    @property
    def subscribed(self) -> bool:
        return bool(self._handlers)

    async def _on_new_message(self, payload: Dict[str, Any]):
        try:
            message = LocalMessage.from_payload(payload)
        except (KeyError, TypeError) as e:
            logger.warning("Ignoring bad %s payload %r: %s", NEW_MESSAGE_EVENT, payload, e)
            return
        if self.selected_peer not in (message.sender_id, message.receiver_id):
            return
        if self.find_message(message.id) is not None:
            return
        self.messages.append(message)

        if message.receiver_id == self.user_id and message.seen_state is SeenState.UNSEEN:
            message.seen_state = SeenState.PENDING
            if await self._mark_seen([message.id]):
                message.seen_state = SeenState.CONFIRMED
                await self._emit(MESSAGE_SEEN_EVENT, {**payload, "seen": True})

    async def _on_message_seen(self, payload: Dict[str, Any]):
        if not isinstance(payload, dict):
            logger.warning("Ignoring bad %s payload %r", MESSAGE_SEEN_EVENT, payload)
            return
        message = self.find_message(payload.get("id"))
        if message is not None:
            message.seen_state = SeenState.CONFIRMED

    # -- REST ------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self.http.request(method, f"{self.api_prefix}{path}", **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ChatClientError(_error_detail(e.response), status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            raise ChatClientError(str(e) or e.__class__.__name__) from e
        return response.json()

    async def _mark_seen(self, message_ids: List[str]) -> bool:
        try:
            await self._request("POST", "/messages/mark-seen", json={"messageIds": message_ids})
        except ChatClientError as e:
            logger.warning("mark-seen for %d message(s) failed: %s", len(message_ids), e.detail)
            return False
        return True

    async def list_users(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/messages/users")

    async def select_peer(self, peer_id: str):
        """Open the conversation with ``peer_id``, replacing whatever was open.

        Handlers stay live during the fetch so pushes that race the history
        request are merged into it. On failure the previous conversation is
        restored.
        """
        previous_peer, previous_messages = self.selected_peer, self.messages
        self.selected_peer = peer_id
        self.messages = []
        self.subscribe()
        try:
            await self.load_history()
        except ChatClientError:
            self.selected_peer, self.messages = previous_peer, previous_messages
            raise

    async def load_history(self):
        if self.selected_peer is None:
            raise ChatClientError("No conversation selected")
        payloads = await self._request("GET", f"/messages/{self.selected_peer}")
        self.messages = self._merge_history([LocalMessage.from_payload(payload) for payload in payloads])

        unseen = [
            message for message in self.messages
            if message.receiver_id == self.user_id and message.seen_state is not SeenState.CONFIRMED
        ]
        if not unseen:
            return

        # Flip locally first; a failed call leaves them pending until the next fetch
        for message in unseen:
            message.seen_state = SeenState.PENDING
        if await self._mark_seen([message.id for message in unseen]):
            for message in unseen:
                message.seen_state = SeenState.CONFIRMED

    def _merge_history(self, history: List[LocalMessage]) -> List[LocalMessage]:
        local = {message.id: message for message in self.messages}
        for message in history:
            known = local.pop(message.id, None)
            if known is not None and message.seen_state is SeenState.UNSEEN:
                message.seen_state = known.seen_state
        # Pushed while the request was in flight
        return history + list(local.values())

    async def send_text(self, text: str) -> LocalMessage:
        return await self._send(f"/messages/send/{self._require_peer()}", json={"text": text})

    async def send_image(self, content: bytes, filename: str, content_type: str = "image/png") -> LocalMessage:
        return await self._send(
            f"/messages/send-image/{self._require_peer()}",
            files={"image": (filename, content, content_type)},
        )

    async def send_pdf(self, content: bytes, filename: str) -> LocalMessage:
        return await self._send(
            f"/messages/send-pdf/{self._require_peer()}",
            files={"pdf": (filename, content, "application/pdf")},
        )

    async def _send(self, path: str, **kwargs) -> LocalMessage:
        payload = await self._request("POST", path, **kwargs)
        message = LocalMessage.from_payload(payload)
        self.messages.append(message)
        return message

    # -- helpers ---------------------------------------------------------

    def _require_peer(self) -> str:
        if self.selected_peer is None:
            raise ChatClientError("No conversation selected")
        return self.selected_peer

    def find_message(self, message_id: Optional[str]) -> Optional[LocalMessage]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    @property
    def pending_seen(self) -> List[LocalMessage]:
        return [message for message in self.messages if message.seen_state is SeenState.PENDING]


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return f"HTTP {response.status_code}"
