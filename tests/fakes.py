import asyncio
import json
from datetime import datetime, timezone
from types import SimpleNamespace


class FakeWebSocket:
    """Stands in for a server-side starlette WebSocket."""

    def __init__(self, fail: bool = False, delay: float = 0):
        self.accepted = False
        self.closed_with = None
        self.sent = []
        self.fail = fail
        self.delay = delay

    async def accept(self):
        self.accepted = True

    async def send_text(self, text: str):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError('Cannot call "send" once a close message has been sent.')
        self.sent.append(json.loads(text))

    async def close(self, code: int = 1000):
        self.closed_with = code

    def events(self, event_type: str):
        return [frame["data"] for frame in self.sent if frame["type"] == event_type]


def make_message(message_id="m1", sender_id="alice", receiver_id="bob", text="hi", seen=False, **extra):
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    fields = dict(
        id=message_id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        text=text,
        image=None,
        document=None,
        seen=seen,
        created_at=now,
        updated_at=now,
    )
    fields.update(extra)
    return SimpleNamespace(**fields)


class FakeMessageRepository:
    def __init__(self, messages):
        self.messages = {message.id: message for message in messages}
        self.requested = []

    async def get_by_ids(self, message_ids):
        self.requested.append(list(message_ids))
        return [self.messages[message_id] for message_id in message_ids if message_id in self.messages]
