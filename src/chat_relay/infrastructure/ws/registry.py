"""Connection registry: the process-local source of truth for who is online."""
from __future__ import annotations

import logging
from uuid import UUID

from chat_relay.application.exceptions import ProtocolError
from chat_relay.infrastructure.ws.connection import OutboundConnection

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Owns live connections and their user bindings.

    Every mutation is synchronous, so on a single event loop each call is
    atomic with respect to every other connection handler.
    """

    def __init__(self) -> None:
        self._connections: dict[str, OutboundConnection] = {}
        self._user_by_conn: dict[str, UUID] = {}
        self._conns_by_user: dict[UUID, set[str]] = {}

    def add(self, connection: OutboundConnection) -> None:
        self._connections[connection.id] = connection
        logger.debug("Connection added: %s (total=%d)", connection.id, len(self._connections))

    def get(self, connection_id: str) -> OutboundConnection | None:
        return self._connections.get(connection_id)

    def discard(self, connection_id: str) -> UUID | None:
        """Forget the connection entirely; returns the user it was bound to."""
        user_id = self.unbind(connection_id)
        self._connections.pop(connection_id, None)
        return user_id

    def bind(self, connection_id: str, user_id: UUID) -> bool:
        """Bind a connection to a user. Returns True if this is a new binding."""
        if connection_id not in self._connections:
            raise ProtocolError(f"Unknown connection {connection_id}")
        current = self._user_by_conn.get(connection_id)
        if current == user_id:
            return False
        if current is not None:
            raise ProtocolError("Connection is already bound to another user")
        self._user_by_conn[connection_id] = user_id
        self._conns_by_user.setdefault(user_id, set()).add(connection_id)
        logger.debug("Bound %s -> %s", connection_id, user_id)
        return True

    def unbind(self, connection_id: str) -> UUID | None:
        user_id = self._user_by_conn.pop(connection_id, None)
        if user_id is None:
            return None
        conns = self._conns_by_user.get(user_id)
        if conns is not None:
            conns.discard(connection_id)
            if not conns:
                del self._conns_by_user[user_id]
        logger.debug("Unbound %s from %s", connection_id, user_id)
        return user_id

    def user_of(self, connection_id: str) -> UUID | None:
        return self._user_by_conn.get(connection_id)

    def resolve(self, user_id: UUID) -> set[str]:
        return set(self._conns_by_user.get(user_id, ()))

    def is_online(self, user_id: UUID) -> bool:
        return bool(self._conns_by_user.get(user_id))

    def connection_ids(self) -> list[str]:
        return list(self._connections)

    def __len__(self) -> int:
        return len(self._connections)
