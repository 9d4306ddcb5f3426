"""Process-scoped realtime state and the connection lifecycle."""
from __future__ import annotations

import logging
from uuid import UUID

from chat_relay.application.dto.principal import Principal
from chat_relay.application.exceptions import ProtocolError
from chat_relay.application.policies.permissions import assert_chat_member
from chat_relay.application.uow import UowFactory
from chat_relay.domain.value_objects.groups import conversation_group, personal_group
from chat_relay.infrastructure.ws.connection import OutboundConnection
from chat_relay.infrastructure.ws.registry import ConnectionRegistry
from chat_relay.infrastructure.ws.rooms import RoomMultiplexer
from chat_relay.services.call_service import CallSignalingRelay
from chat_relay.services.presence_service import PresencePublisher

logger = logging.getLogger(__name__)


class RealtimeHub:
    """Owns the registry, rooms, presence and call relay for one process.

    Created with the application and kept on ``app.state``; nothing here is
    a module-level singleton.
    """

    def __init__(
        self,
        uow_factory: UowFactory,
        *,
        ring_timeout: float | None = None,
        autojoin_chats: bool = True,
    ) -> None:
        self.uow_factory = uow_factory
        self.registry = ConnectionRegistry()
        self.rooms = RoomMultiplexer(self.registry)
        self.presence = PresencePublisher(self.registry, self.rooms, uow_factory)
        self.calls = CallSignalingRelay(self.registry, self.rooms, ring_timeout=ring_timeout)
        self._autojoin_chats = autojoin_chats

    def attach(self, connection: OutboundConnection) -> None:
        self.registry.add(connection)

    async def setup(self, connection_id: str, principal: Principal) -> None:
        """Bind the connection, join its groups, publish presence."""
        self.registry.bind(connection_id, principal.user_id)
        self.rooms.join(connection_id, personal_group(principal.user_id))
        if self._autojoin_chats:
            await self._join_known_chats(connection_id, principal.user_id)
        await self.presence.user_connected(principal.user_id, connection_id)

    async def join_chat(self, connection_id: str, chat_id: UUID) -> None:
        user_id = self._require_user(connection_id)
        async with self.uow_factory() as uow:
            await assert_chat_member(Principal(user_id=user_id), chat_id, uow.chats)
        self.rooms.join(connection_id, conversation_group(chat_id))

    def leave_chat(self, connection_id: str, chat_id: UUID) -> None:
        self.rooms.leave(connection_id, conversation_group(chat_id))

    def relay_typing(self, connection_id: str, chat_id: UUID, event_type: str) -> int:
        user_id = self._require_user(connection_id)
        group = conversation_group(chat_id)
        if group not in self.rooms.groups_of(connection_id):
            raise ProtocolError("Join the chat before sending typing events")
        return self.rooms.broadcast(
            group,
            event_type,
            {"chat_id": str(chat_id), "user_id": str(user_id)},
            exclude=connection_id,
        )

    async def disconnect(self, connection_id: str) -> None:
        """Tear down a connection; safe for connections that never set up."""
        self.calls.connection_closed(connection_id)
        self.rooms.leave_all(connection_id)
        user_id = self.registry.discard(connection_id)
        if user_id is None:
            return
        await self.presence.user_disconnected(user_id)

    def _require_user(self, connection_id: str) -> UUID:
        user_id = self.registry.user_of(connection_id)
        if user_id is None:
            raise ProtocolError("Connection must complete setup first")
        return user_id

    async def _join_known_chats(self, connection_id: str, user_id: UUID) -> None:
        try:
            async with self.uow_factory() as uow:
                chat_ids = await uow.chats.list_chat_ids_for_user(user_id)
        except Exception:
            logger.warning("Could not load chats for %s, skipping auto-join", user_id, exc_info=True)
            return
        for chat_id in chat_ids:
            self.rooms.join(connection_id, conversation_group(chat_id))
