from __future__ import annotations

import asyncio

import pytest

from tests.conftest import USER_A, connect


@pytest.mark.asyncio
async def test_first_connection_publishes_online(hub, uow, alice, bob):
    watcher = await connect(hub, bob)
    first = await connect(hub, alice)

    assert watcher.of_type("user_online") == [{"user_id": str(USER_A)}]
    assert first.of_type("user_online") == []
    assert ("online", USER_A, None) in uow.presence_w.calls
    assert hub.presence.is_published_online(USER_A)


@pytest.mark.asyncio
async def test_second_device_does_not_republish(hub, alice, bob):
    watcher = await connect(hub, bob)
    await connect(hub, alice)
    await connect(hub, alice)

    assert len(watcher.of_type("user_online")) == 1


@pytest.mark.asyncio
async def test_offline_only_after_last_connection(hub, alice, bob):
    watcher = await connect(hub, bob)
    phone = await connect(hub, alice)
    laptop = await connect(hub, alice)

    await hub.disconnect(phone.id)
    assert watcher.of_type("user_offline") == []

    await hub.disconnect(laptop.id)
    offline = watcher.of_type("user_offline")
    assert len(offline) == 1
    assert offline[0]["user_id"] == str(USER_A)
    assert "last_seen_at" in offline[0]
    assert not hub.presence.is_published_online(USER_A)


@pytest.mark.asyncio
async def test_concurrent_disconnects_publish_single_offline(hub, uow, alice, bob):
    uow.presence_w.delay = 0.01
    watcher = await connect(hub, bob)
    conns = [await connect(hub, alice) for _ in range(3)]

    await asyncio.gather(*(hub.disconnect(c.id) for c in conns))

    assert len(watcher.of_type("user_offline")) == 1
    assert len([c for c in uow.presence_w.calls if c[0] == "offline"]) == 1


@pytest.mark.asyncio
async def test_persistence_failure_still_broadcasts(hub, uow, alice, bob):
    uow.presence_w.fail = True
    watcher = await connect(hub, bob)
    conn = await connect(hub, alice)

    await hub.disconnect(conn.id)

    assert len(watcher.of_type("user_online")) == 1
    assert len(watcher.of_type("user_offline")) == 1
    assert uow.presence_w.calls == []


@pytest.mark.asyncio
async def test_reconnect_after_offline_publishes_again(hub, alice, bob):
    watcher = await connect(hub, bob)
    conn = await connect(hub, alice)
    await hub.disconnect(conn.id)
    await connect(hub, alice)

    assert watcher.types.count("user_online") == 2
    assert watcher.types.count("user_offline") == 1


@pytest.mark.asyncio
async def test_user_locks_are_released(hub, alice):
    conn = await connect(hub, alice)
    await hub.disconnect(conn.id)

    assert hub.presence._locks == {}
