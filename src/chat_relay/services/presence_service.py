from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator
from uuid import UUID

from chat_relay.application.ports.clock import Clock, system_clock
from chat_relay.application.ports.realtime import Broadcaster, PresenceDirectory
from chat_relay.application.uow import UowFactory

logger = logging.getLogger(__name__)


class PresencePublisher:
    """Turns registry changes into online/offline transitions.

    A user is ONLINE from the moment their first connection binds until the
    last one unbinds. Transitions for one user are serialized by a per-user
    lock and re-checked against the registry once the lock is held, so a
    burst of disconnects yields a single ``user_offline``.
    """

    def __init__(
        self,
        directory: PresenceDirectory,
        broadcaster: Broadcaster,
        uow_factory: UowFactory,
        clock: Clock = system_clock,
    ) -> None:
        self._directory = directory
        self._broadcaster = broadcaster
        self._uow_factory = uow_factory
        self._clock = clock
        self._online: set[UUID] = set()
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._lock_users: dict[UUID, int] = {}

    def is_published_online(self, user_id: UUID) -> bool:
        return user_id in self._online

    async def user_connected(self, user_id: UUID, connection_id: str) -> bool:
        """Publish OFFLINE→ONLINE if this connection made the user reachable."""
        async with self._user_lock(user_id):
            if user_id in self._online or not self._directory.is_online(user_id):
                return False
            self._online.add(user_id)
            await self._persist(user_id, online=True)
            self._broadcaster.broadcast_all(
                "user_online", {"user_id": str(user_id)}, exclude=connection_id,
            )
            logger.info("User %s is online", user_id)
            return True

    async def user_disconnected(self, user_id: UUID) -> bool:
        """Publish ONLINE→OFFLINE once no bound connection remains."""
        async with self._user_lock(user_id):
            if user_id not in self._online or self._directory.is_online(user_id):
                return False
            self._online.discard(user_id)
            last_seen = self._clock.now()
            await self._persist(user_id, online=False, last_seen=last_seen)
            self._broadcaster.broadcast_all(
                "user_offline",
                {"user_id": str(user_id), "last_seen_at": last_seen.isoformat()},
            )
            logger.info("User %s is offline", user_id)
            return True

    async def _persist(
        self,
        user_id: UUID,
        *,
        online: bool,
        last_seen: datetime | None = None,
    ) -> None:
        try:
            async with self._uow_factory() as uow:
                if online:
                    await uow.presence_w.set_online(user_id)
                else:
                    assert last_seen is not None
                    await uow.presence_w.set_offline(user_id, last_seen)
                await uow.commit()
        except Exception:
            logger.warning("Presence write failed for %s, broadcasting anyway", user_id, exc_info=True)

    @asynccontextmanager
    async def _user_lock(self, user_id: UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                del self._lock_users[user_id]
                del self._locks[user_id]
