import asyncio

import pytest

from tickchat.presence import PresenceRegistry
from tickchat.websocket_manager import ConnectionManager
from tests.fakes import FakeWebSocket


@pytest.fixture
def manager():
    return ConnectionManager(PresenceRegistry(), push_timeout=0.5)


@pytest.mark.asyncio
async def test_connect_registers_and_broadcasts_full_online_set(manager):
    alice_ws, bob_ws = FakeWebSocket(), FakeWebSocket()

    alice_conn = await manager.connect(alice_ws, "alice")
    bob_conn = await manager.connect(bob_ws, "bob")

    assert alice_ws.accepted and bob_ws.accepted
    assert manager.registry.lookup("alice") == alice_conn
    assert manager.registry.lookup("bob") == bob_conn
    assert alice_ws.events("getOnlineUsers") == [["alice"], ["alice", "bob"]]
    assert bob_ws.events("getOnlineUsers") == [["alice", "bob"]]


@pytest.mark.asyncio
async def test_disconnect_rebroadcasts_online_set(manager):
    alice_ws, bob_ws = FakeWebSocket(), FakeWebSocket()
    await manager.connect(alice_ws, "alice")
    bob_conn = await manager.connect(bob_ws, "bob")

    await manager.disconnect(bob_conn, "bob")

    assert manager.get_connected_users() == ["alice"]
    assert alice_ws.events("getOnlineUsers")[-1] == ["alice"]
    assert not manager.is_user_online("bob")


@pytest.mark.asyncio
async def test_cancelled_disconnect_still_rebroadcasts_online_set(manager):
    alice_ws, bob_ws = FakeWebSocket(), FakeWebSocket()
    await manager.connect(alice_ws, "alice")
    bob_conn = await manager.connect(bob_ws, "bob")
    alice_ws.delay = 0.05

    task = asyncio.ensure_future(manager.disconnect(bob_conn, "bob"))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    await asyncio.sleep(0.1)

    assert alice_ws.events("getOnlineUsers")[-1] == ["alice"]


@pytest.mark.asyncio
async def test_stale_disconnect_does_not_evict_reconnected_user(manager):
    first, second, watcher = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
    await manager.connect(watcher, "carol")
    first_conn = await manager.connect(first, "alice")
    second_conn = await manager.connect(second, "alice")
    broadcasts_before = len(watcher.events("getOnlineUsers"))

    await manager.disconnect(first_conn, "alice")

    assert manager.registry.lookup("alice") == second_conn
    assert manager.is_user_online("alice")
    assert len(watcher.events("getOnlineUsers")) == broadcasts_before


@pytest.mark.asyncio
async def test_send_to_user_targets_latest_connection(manager):
    first, second = FakeWebSocket(), FakeWebSocket()
    await manager.connect(first, "alice")
    await manager.connect(second, "alice")

    assert await manager.send_to_user("alice", "newMessage", {"id": "m1"}) is True
    assert first.events("newMessage") == []
    assert second.events("newMessage") == [{"id": "m1"}]


@pytest.mark.asyncio
async def test_send_to_missing_connection_is_dropped(manager):
    assert await manager.send("nope", "newMessage", {}) is False
    assert await manager.send_to_user("nobody", "newMessage", {}) is False


@pytest.mark.asyncio
async def test_failed_send_is_swallowed_and_socket_forgotten(manager):
    broken = FakeWebSocket()
    conn = await manager.connect(broken, "alice")
    broken.fail = True

    assert await manager.send(conn, "newMessage", {"id": "m1"}) is False
    assert conn not in manager.active_connections


@pytest.mark.asyncio
async def test_slow_send_times_out():
    manager = ConnectionManager(PresenceRegistry(), push_timeout=0.01)
    slow = FakeWebSocket()
    conn = await manager.connect(slow, "alice")
    slow.delay = 1

    assert await manager.send(conn, "newMessage", {"id": "m1"}) is False


@pytest.mark.asyncio
async def test_close_all_closes_sockets_and_clears_presence(manager):
    alice_ws = FakeWebSocket()
    await manager.connect(alice_ws, "alice")

    await manager.close_all()

    assert alice_ws.closed_with == 1001
    assert manager.active_connections == {}
    assert manager.get_connected_users() == []
