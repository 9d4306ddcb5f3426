"""Room multiplexer: group membership and fan-out delivery."""
from __future__ import annotations

import logging
from typing import Any, Iterable
from uuid import UUID

from chat_relay.application.exceptions import DeliveryError, ProtocolError
from chat_relay.domain.value_objects.groups import personal_group
from chat_relay.infrastructure.ws.protocol import encode_event
from chat_relay.infrastructure.ws.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class RoomMultiplexer:
    """Tracks which connections belong to which named groups.

    Delivery is fire-and-forget: each event is serialized once and handed to
    every target connection's outbound queue. A connection that rejects the
    event is logged and skipped; the caller never sees the failure.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry
        self._members: dict[str, set[str]] = {}
        self._groups_by_conn: dict[str, set[str]] = {}

    def join(self, connection_id: str, group: str) -> None:
        self._members.setdefault(group, set()).add(connection_id)
        self._groups_by_conn.setdefault(connection_id, set()).add(group)

    def leave(self, connection_id: str, group: str) -> None:
        members = self._members.get(group)
        if not members or connection_id not in members:
            raise ProtocolError(f"Not a member of group {group}")
        self._drop(connection_id, group)

    def leave_all(self, connection_id: str) -> None:
        for group in self._groups_by_conn.pop(connection_id, set()):
            members = self._members.get(group)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._members[group]

    def members(self, group: str) -> set[str]:
        return set(self._members.get(group, ()))

    def groups_of(self, connection_id: str) -> set[str]:
        return set(self._groups_by_conn.get(connection_id, ()))

    def broadcast(
        self,
        group: str,
        event_type: str,
        data: dict[str, Any],
        exclude: str | None = None,
    ) -> int:
        """Deliver to every member of ``group`` except ``exclude``.

        Returns how many connections accepted the event.
        """
        targets = [cid for cid in self._members.get(group, ()) if cid != exclude]
        return self._deliver(targets, event_type, data)

    def broadcast_all(
        self,
        event_type: str,
        data: dict[str, Any],
        exclude: str | None = None,
    ) -> int:
        targets = [cid for cid in self._registry.connection_ids() if cid != exclude]
        return self._deliver(targets, event_type, data)

    def send_to_user(self, user_id: UUID, event_type: str, data: dict[str, Any]) -> int:
        """Deliver to every connection of one user through their personal group."""
        return self.broadcast(personal_group(user_id), event_type, data)

    def send_to_connection(
        self,
        connection_id: str,
        event_type: str,
        data: dict[str, Any],
    ) -> bool:
        return self._deliver([connection_id], event_type, data) == 1

    def send_to_connections(
        self,
        connection_ids: Iterable[str],
        event_type: str,
        data: dict[str, Any],
    ) -> int:
        return self._deliver(list(connection_ids), event_type, data)

    def _drop(self, connection_id: str, group: str) -> None:
        members = self._members[group]
        members.discard(connection_id)
        if not members:
            del self._members[group]
        groups = self._groups_by_conn.get(connection_id)
        if groups is not None:
            groups.discard(group)
            if not groups:
                del self._groups_by_conn[connection_id]

    def _deliver(self, targets: list[str], event_type: str, data: dict[str, Any]) -> int:
        if not targets:
            return 0
        raw = encode_event(event_type, data)
        delivered = 0
        for cid in targets:
            conn = self._registry.get(cid)
            if conn is None:
                logger.debug("Dropping %s for vanished connection %s", event_type, cid)
                continue
            try:
                conn.enqueue(raw)
            except DeliveryError as exc:
                logger.warning("Dropped %s for %s: %s", event_type, cid, exc.detail)
                continue
            except Exception:
                logger.exception("Unexpected delivery failure for %s", cid)
                continue
            delivered += 1
        return delivered
