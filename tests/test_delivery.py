import pytest

from tickchat.delivery import DeliveryRouter
from tickchat.presence import PresenceRegistry
from tickchat.websocket_manager import ConnectionManager
from tests.fakes import FakeMessageRepository, FakeWebSocket, make_message


@pytest.fixture
def manager():
    return ConnectionManager(PresenceRegistry(), push_timeout=0.5)


@pytest.fixture
def router(manager):
    return DeliveryRouter(manager)


@pytest.mark.asyncio
async def test_new_message_pushed_once_to_online_receiver(manager, router):
    alice_ws, bob_ws = FakeWebSocket(), FakeWebSocket()
    await manager.connect(alice_ws, "alice")
    await manager.connect(bob_ws, "bob")

    delivered = await router.on_message_created(make_message(text="hi"))

    assert delivered is True
    pushed = bob_ws.events("newMessage")
    assert len(pushed) == 1
    assert pushed[0]["id"] == "m1"
    assert pushed[0]["senderId"] == "alice"
    assert pushed[0]["receiverId"] == "bob"
    assert pushed[0]["seen"] is False
    assert alice_ws.events("newMessage") == []


@pytest.mark.asyncio
async def test_new_message_to_offline_receiver_is_not_pushed(manager, router):
    alice_ws = FakeWebSocket()
    await manager.connect(alice_ws, "alice")

    delivered = await router.on_message_created(make_message())

    assert delivered is False
    assert alice_ws.events("newMessage") == []


@pytest.mark.asyncio
async def test_seen_fanout_reaches_sender_and_receiver(manager, router):
    alice_ws, bob_ws = FakeWebSocket(), FakeWebSocket()
    await manager.connect(alice_ws, "alice")
    await manager.connect(bob_ws, "bob")
    repo = FakeMessageRepository([
        make_message("m1", seen=True),
        make_message("m2", seen=True),
    ])

    count = await router.on_messages_marked_seen(["m1", "m2"], repo, "bob")

    assert count == 2
    assert sorted(m["id"] for m in alice_ws.events("messageSeen")) == ["m1", "m2"]
    assert sorted(m["id"] for m in bob_ws.events("messageSeen")) == ["m1", "m2"]
    assert all(m["seen"] for m in alice_ws.events("messageSeen"))


@pytest.mark.asyncio
async def test_seen_fanout_skips_messages_not_addressed_to_reader(manager, router):
    alice_ws, bob_ws = FakeWebSocket(), FakeWebSocket()
    await manager.connect(alice_ws, "alice")
    await manager.connect(bob_ws, "bob")
    repo = FakeMessageRepository([
        make_message("m1", sender_id="bob", receiver_id="alice", seen=False),
        make_message("m2", seen=True),
    ])

    count = await router.on_messages_marked_seen(["m1", "m2", "missing"], repo, "bob")

    assert count == 1
    assert [m["id"] for m in alice_ws.events("messageSeen")] == ["m2"]


@pytest.mark.asyncio
async def test_seen_fanout_with_offline_sender(manager, router):
    bob_ws = FakeWebSocket()
    await manager.connect(bob_ws, "bob")
    repo = FakeMessageRepository([make_message("m1", seen=True)])

    count = await router.on_messages_marked_seen(["m1"], repo, "bob")

    assert count == 1
    assert [m["id"] for m in bob_ws.events("messageSeen")] == ["m1"]
